from pdf_architect.services.history import History


def test_empty_history():
    history = History()
    assert len(history) == 0
    assert history.cursor == -1
    assert history.current is None
    assert history.original is None
    assert not history.can_undo and not history.can_redo
    assert history.undo() is None
    assert history.redo() is None


def test_load_starts_at_revision_zero():
    history = History()
    history.load(b"v0")
    assert len(history) == 1
    assert history.cursor == 0
    assert history.current == b"v0"
    assert not history.can_undo


def test_n_applies_give_n_plus_one_snapshots():
    history = History()
    history.load(b"v0")
    for i in range(1, 4):
        assert history.push(f"v{i}".encode()) == i
    assert len(history) == 4
    assert history.current == b"v3"
    assert history.original == b"v0"


def test_undo_then_redo_restores_byte_identical_revision():
    history = History()
    history.load(b"v0")
    history.push(b"v1")
    assert history.undo() == b"v0"
    assert history.can_redo
    assert history.redo() == b"v1"
    assert not history.can_redo


def test_push_after_undo_prunes_redo_branch():
    history = History()
    history.load(b"v0")
    history.push(b"v1")
    history.push(b"v2")
    history.undo()
    history.undo()
    assert history.push(b"v1b") == 1
    assert len(history) == 2
    assert history.current == b"v1b"
    assert not history.can_redo


def test_load_replaces_previous_history():
    history = History()
    history.load(b"a")
    history.push(b"b")
    history.load(b"c")
    assert len(history) == 1
    assert history.current == b"c"


def test_push_on_empty_history_loads():
    history = History()
    assert history.push(b"v0") == 0
    assert history.current == b"v0"


def test_clear():
    history = History()
    history.load(b"v0")
    history.clear()
    assert history.cursor == -1
    assert history.current is None
