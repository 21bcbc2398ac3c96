import asyncio
import json

import httpx
import pytest

from pdf_architect.core.errors import DocumentLoadError, NoDocumentError, RegionError, SessionBusyError
from pdf_architect.llm.gemini_client import GeminiClient
from pdf_architect.schemas.edit import ActionKind, EditInstruction, ShapeType
from pdf_architect.services.editor_session import EditorSession, StatusBoard, ToolMode, export_filename
from pdf_architect.services.instruction_synthesizer import (
    InstructionSynthesizer,
    SynthesisResult,
    SynthesisStatus,
    parse_instructions,
)
from pdf_architect.utils.coordinates import PointerEvent, SelectionArea, SurfaceBounds
from pdf_architect.utils.pdf_document import render_page

from conftest import find_span, make_pdf

LETTER = SurfaceBounds(left=0, top=0, width=612, height=792)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeSynthesizer:
    def __init__(self, result, on_call=None):
        self.result = result
        self.on_call = on_call
        self.calls = []

    async def synthesize(self, command, document_text, page_count, **kwargs):
        self.calls.append(dict(command=command, document_text=document_text, page_count=page_count, **kwargs))
        if self.on_call:
            self.on_call()
        return self.result


def ok(*instructions):
    return parse_instructions(json.dumps(list(instructions)))


def fake_ocr(answer="Acme Corp"):
    calls = []

    async def ocr(image_bytes):
        calls.append(image_bytes)
        return answer

    ocr.calls = calls
    return ocr


def make_session(acme_pdf=None, **kwargs):
    kwargs.setdefault("render_scale", 1.0)
    kwargs.setdefault("status_board", StatusBoard(clear_after=3.0, clock=FakeClock()))
    session = EditorSession(**kwargs)
    if acme_pdf is not None:
        session.load_document("report.pdf", acme_pdf)
    return session


def select_acme(session):
    """Drag over 'Acme Corp' (5%,5%) -> (60%,13%) and release."""
    session.pointer_down(PointerEvent(client_x=30.6, client_y=39.6), LETTER)
    session.pointer_move(PointerEvent(client_x=367.2, client_y=102.96), LETTER)
    return asyncio.run(session.pointer_up())


RENAME = {
    "action": "REPLACE_TEXT",
    "pageNumber": 1,
    "explanation": "rename",
    "parameters": {"targetText": "Acme Corp", "newText": "Umbrella Inc"},
}


# ── Loading ───────────────────────────────────────────────────────────────────

def test_load_document(acme_pdf):
    session = make_session()
    assert session.load_document("report.pdf", acme_pdf) == 2
    assert session.page_count == 2
    assert session.current_page == 1
    assert len(session.history) == 1
    assert session.document == acme_pdf
    assert session.file_size == len(acme_pdf)


def test_failed_load_changes_nothing(acme_pdf):
    session = make_session(acme_pdf)
    with pytest.raises(DocumentLoadError):
        session.load_document("notes.txt", b"plain text")
    assert session.status.message == "Upload Error"
    assert session.name == "report.pdf"
    assert session.document == acme_pdf


def test_operations_need_a_document():
    session = make_session()
    with pytest.raises(NoDocumentError):
        asyncio.run(session.run_command("anything"))
    with pytest.raises(NoDocumentError):
        session.export()
    with pytest.raises(NoDocumentError):
        session.set_page(2)


# ── Pages, tools, selection ───────────────────────────────────────────────────

def test_set_page_clamps_and_clears_selection(acme_pdf):
    session = make_session(acme_pdf)
    session.selection.selection = SelectionArea(10, 10, 20, 20)
    assert session.set_page(9) == 2
    assert session.selection.selection is None
    assert session.set_page(-1) == 1


def test_switching_tool_clears_selection(acme_pdf):
    session = make_session(acme_pdf)
    session.selection.selection = SelectionArea(10, 10, 20, 20)
    session.set_tool(ToolMode.RECT)
    assert session.selection.selection is None
    assert session.tool == ToolMode.RECT


def test_drawn_selection_is_scanned_in_ai_mode(acme_pdf):
    ocr = fake_ocr("Acme Corp")
    session = make_session(acme_pdf, ocr=ocr)
    commit = select_acme(session)
    assert commit.needs_resolution
    assert len(ocr.calls) == 1
    assert session.region.selected_text == "Acme Corp"
    assert session.status.message == "Content Identified"


def test_blank_ocr_locks_target_and_uses_layout_text(acme_pdf):
    session = make_session(acme_pdf, ocr=fake_ocr("No text found"))
    select_acme(session)
    assert session.status.message == "Target Locked"
    assert session.region.selected_text == "Acme Corp"


def test_ocr_failure_reports_vision_error(acme_pdf):
    async def broken(image_bytes):
        raise RuntimeError("quota")

    session = make_session(acme_pdf, ocr=broken)
    select_acme(session)
    assert session.status.message == "Vision Error"
    assert session.region.selected_text == ""


def test_manual_tools_do_not_scan(acme_pdf):
    ocr = fake_ocr()
    session = make_session(acme_pdf, ocr=ocr)
    session.set_tool(ToolMode.TEXT)
    select_acme(session)
    assert ocr.calls == []
    assert session.region is None
    sel = session.selection.selection
    assert (sel.x1, sel.y1, sel.x2, sel.y2) == pytest.approx((5, 5, 60, 13))


def test_missing_ocr_capability(acme_pdf):
    session = make_session(acme_pdf)
    select_acme(session)
    assert session.status.message == "OCR unavailable"
    assert session.region is None


def test_page_raster_is_cached_per_revision(acme_pdf):
    calls = []

    def renderer(doc, page, scale):
        calls.append((page, scale))
        return render_page(doc, page, scale)

    session = make_session(acme_pdf, renderer=renderer)
    first = session.page_raster()
    assert session.page_raster() is first
    session.set_page(2)
    session.page_raster()
    assert calls == [(1, 1.0), (2, 1.0)]


# ── Command cycle ─────────────────────────────────────────────────────────────

def test_command_applies_new_revision(acme_pdf):
    synth = FakeSynthesizer(ok(RENAME))
    session = make_session(acme_pdf, ocr=fake_ocr("Acme Corp"), synthesizer=synth)
    select_acme(session)

    outcome = asyncio.run(session.run_command("rename the company"))

    assert outcome.applied
    assert outcome.report.applied == [0]
    assert len(session.history) == 2
    assert session.history.cursor == 1
    assert find_span(session.document, "Umbrella Inc") is not None
    assert session.status.message == "Applied 1 edit(s)"
    assert session.selection.selection is None
    assert not session.is_processing

    call = synth.calls[0]
    assert call["command"] == "rename the company"
    assert "Acme Corp" in call["document_text"]
    assert call["page_count"] == 2
    assert call["selected_text"] == "Acme Corp"
    assert call["selection_image"]
    sel = call["selection"]
    assert (sel.x1, sel.y1, sel.x2, sel.y2) == pytest.approx((5, 5, 60, 13))


@pytest.mark.parametrize("result,message", [
    (SynthesisResult(SynthesisStatus.PARSE_FAILURE, error="bad json"), "Could not understand the model response"),
    (SynthesisResult(SynthesisStatus.ERROR, error="503"), "Model unavailable"),
    (SynthesisResult(SynthesisStatus.EMPTY), "No actionable edits"),
])
def test_unusable_synthesis_leaves_history_alone(acme_pdf, result, message):
    session = make_session(acme_pdf, synthesizer=FakeSynthesizer(result))
    outcome = asyncio.run(session.run_command("do something"))
    assert not outcome.applied
    assert outcome.synthesis.status == result.status
    assert len(session.history) == 1
    assert session.status.message == message


def test_blank_command_is_ignored(acme_pdf):
    synth = FakeSynthesizer(ok(RENAME))
    session = make_session(acme_pdf, synthesizer=synth)
    assert not asyncio.run(session.run_command("   ")).applied
    assert synth.calls == []


def test_busy_session_rejects_second_command(acme_pdf):
    session = make_session(acme_pdf, synthesizer=FakeSynthesizer(ok(RENAME)))
    session.is_processing = True
    with pytest.raises(SessionBusyError):
        asyncio.run(session.run_command("rename"))
    assert len(session.history) == 1


def test_processing_flag_is_set_during_cycle_and_reset_after_failure(acme_pdf):
    seen = []
    session = make_session(acme_pdf)

    def on_call():
        seen.append(session.is_processing)
        raise RuntimeError("synth crashed")

    session.synthesizer = FakeSynthesizer(ok(RENAME), on_call=on_call)
    with pytest.raises(RuntimeError):
        asyncio.run(session.run_command("rename"))
    assert seen == [True]
    assert not session.is_processing


def test_result_for_replaced_document_is_discarded(acme_pdf):
    other = make_pdf([(612, 792, [("Other doc", 100, 700, 12)])])
    session = make_session(acme_pdf)
    session.synthesizer = FakeSynthesizer(
        ok(RENAME), on_call=lambda: session.load_document("other.pdf", other),
    )
    outcome = asyncio.run(session.run_command("rename"))
    assert not outcome.applied
    assert session.document == other
    assert len(session.history) == 1


def test_generated_image_is_resolved_before_applying(acme_pdf, png_data_url):
    prompts = []

    async def generator(prompt):
        prompts.append(prompt)
        return png_data_url

    generate = {
        "action": "GENERATE_IMAGE",
        "pageNumber": 1,
        "explanation": "logo",
        "parameters": {"imagePrompt": "a red square", "x": 10, "y": 10, "width": 10, "height": 10},
    }
    synth_result = ok(generate)
    session = make_session(acme_pdf, synthesizer=FakeSynthesizer(synth_result), image_generator=generator)
    outcome = asyncio.run(session.run_command("add a logo"))

    assert prompts == ["a red square"]
    assert outcome.report.applied == [0]
    assert outcome.instructions[0].parameters.image_url == png_data_url
    assert synth_result.instructions[0].parameters.image_url is None


def test_image_prompt_without_generator_is_skipped(acme_pdf):
    generate = {"action": "GENERATE_IMAGE", "parameters": {"imagePrompt": "a cat"}}
    session = make_session(acme_pdf, synthesizer=FakeSynthesizer(ok(generate)))
    outcome = asyncio.run(session.run_command("add a cat"))
    assert outcome.applied
    assert outcome.report.applied == []
    assert session.status.message == "Applied 0 edit(s), 1 skipped"


def html_gemini_client():
    def handler(request):
        return httpx.Response(200, text="<html><body>upstream proxy error</body></html>")

    return GeminiClient(api_key="k", transport=httpx.MockTransport(handler))


def test_non_json_model_reply_reports_model_unavailable(acme_pdf):
    session = make_session(acme_pdf, synthesizer=InstructionSynthesizer(html_gemini_client()))
    outcome = asyncio.run(session.run_command("make it red"))
    assert not outcome.applied
    assert outcome.synthesis.status == SynthesisStatus.ERROR
    assert session.status.message == "Model unavailable"
    assert len(session.history) == 1
    assert not session.is_processing


async def broken_generator(prompt):
    raise RuntimeError("image backend down")


@pytest.mark.parametrize("generator", [
    html_gemini_client().generate_image,
    broken_generator,
], ids=["non_json_reply", "generator_raises"])
def test_failed_image_generation_skips_only_that_instruction(acme_pdf, generator):
    session = make_session(acme_pdf, image_generator=generator)
    batch = parse_instructions(json.dumps([
        {"action": "GENERATE_IMAGE", "pageNumber": 1, "parameters": {"imagePrompt": "a logo", "x": 10, "y": 10}},
        {"action": "ADD_TEXT", "pageNumber": 1, "parameters": {"newText": "kept", "x": 10, "y": 10}},
    ])).instructions

    outcome = asyncio.run(session.apply_instructions(batch))

    assert outcome.applied
    assert outcome.report.applied == [1]
    assert [i for i, _ in outcome.report.skipped] == [0]
    assert find_span(session.document, "kept") is not None
    assert len(session.history) == 2


# ── Manual edits ──────────────────────────────────────────────────────────────

def test_manual_text_anchors_at_selection_bottom_left(acme_pdf):
    session = make_session(acme_pdf)
    session.selection.selection = SelectionArea(10, 10, 50, 30)
    instruction = session.manual_text_instruction("Hello")
    assert instruction.action == ActionKind.ADD_TEXT
    assert instruction.parameters.x == pytest.approx(10)
    assert instruction.parameters.y == pytest.approx(70)
    assert instruction.parameters.font_size == 18
    assert instruction.parameters.color == "#000000"

    outcome = asyncio.run(session.apply_instructions([instruction]))
    assert outcome.applied
    span = find_span(session.document, "Hello")
    # (61.2, 554.4) bottom-up -> y = 792 - 554.4 top-down
    assert span["origin"][0] == pytest.approx(61.2, abs=0.5)
    assert span["origin"][1] == pytest.approx(237.6, abs=0.5)


def test_manual_shape_and_image_cover_selection(acme_pdf, png_bytes):
    session = make_session(acme_pdf)
    session.selection.selection = SelectionArea(10, 10, 50, 30)
    shape = session.manual_shape_instruction(ShapeType.RECT)
    assert (shape.parameters.x, shape.parameters.y, shape.parameters.width, shape.parameters.height) == \
        pytest.approx((10, 70, 40, 20))
    image = session.manual_image_instruction(image_bytes=png_bytes)
    assert image.action == ActionKind.ADD_IMAGE
    assert image.parameters.image_bytes == png_bytes

    outcome = asyncio.run(session.apply_instructions([shape, image]))
    assert outcome.report.applied == [0, 1]


def test_manual_edit_without_selection(acme_pdf):
    session = make_session(acme_pdf)
    with pytest.raises(RegionError):
        session.manual_text_instruction("Hello")


def test_manual_instructions_record_their_selection(acme_pdf, png_bytes):
    session = make_session(acme_pdf)
    session.selection.selection = SelectionArea(10, 10, 50, 30)
    built = [
        session.manual_text_instruction("Hello"),
        session.manual_shape_instruction(ShapeType.RECT),
        session.manual_image_instruction(image_bytes=png_bytes),
    ]
    for instruction in built:
        area = instruction.parameters.selection_area
        assert (area.x1, area.y1, area.x2, area.y2) == pytest.approx((10, 10, 50, 30))
    dumped = built[0].model_dump(by_alias=True)
    assert dumped["parameters"]["selectionArea"] == {"x1": 10, "y1": 10, "x2": 50, "y2": 30}


# ── Undo / redo / export ──────────────────────────────────────────────────────

def test_undo_redo_and_branch_pruning(acme_pdf):
    session = make_session(acme_pdf)
    def add(text, y):
        return EditInstruction.model_validate(
            {"action": "ADD_TEXT", "parameters": {"newText": text, "x": 10, "y": y}}
        )

    asyncio.run(session.apply_instructions([add("one", 10)]))
    v1 = session.document
    asyncio.run(session.apply_instructions([add("two", 20)]))
    assert len(session.history) == 3

    assert session.undo()
    assert session.document == v1
    assert session.undo()
    assert session.document == acme_pdf
    assert not session.undo()
    assert session.redo()
    assert session.document == v1

    asyncio.run(session.apply_instructions([add("three", 30)]))
    assert len(session.history) == 3
    assert not session.redo()
    assert find_span(session.document, "three") is not None
    assert find_span(session.document, "two") is None


def test_export_names_edited_copy(acme_pdf):
    session = make_session(acme_pdf)
    name, data = session.export()
    assert name == "report_edited.pdf"
    assert data == acme_pdf


@pytest.mark.parametrize("name,expected", [
    ("report.pdf", "report_edited.pdf"),
    ("archive.v2.pdf", "archive.v2_edited.pdf"),
    (None, "document_edited.pdf"),
])
def test_export_filename(name, expected):
    assert export_filename(name) == expected


# ── Status line ───────────────────────────────────────────────────────────────

def test_status_message_expires():
    clock = FakeClock()
    board = StatusBoard(clear_after=3.0, clock=clock)
    assert board.message is None
    board.post("Scanning...")
    clock.now = 2.9
    assert board.message == "Scanning..."
    clock.now = 3.0
    assert board.message is None


def test_new_status_restarts_the_timer():
    clock = FakeClock()
    board = StatusBoard(clear_after=3.0, clock=clock)
    board.post("first")
    clock.now = 2.0
    board.post("second")
    clock.now = 4.0
    assert board.message == "second"
