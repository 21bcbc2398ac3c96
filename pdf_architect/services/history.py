"""Linear undo history of document revisions."""

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


class History:
    """
    Ordered document snapshots plus a cursor.

    The cursor is -1 while nothing is loaded, otherwise a valid index.
    Pushing while the cursor is not at the tail drops every snapshot after the
    cursor first (the redo branch is pruned).
    """

    def __init__(self) -> None:
        self._snapshots: List[bytes] = []
        self._cursor: int = -1

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> Optional[bytes]:
        if self._cursor < 0:
            return None
        return self._snapshots[self._cursor]

    @property
    def original(self) -> Optional[bytes]:
        return self._snapshots[0] if self._snapshots else None

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return 0 <= self._cursor < len(self._snapshots) - 1

    def load(self, document: bytes) -> None:
        """Start a fresh history with ``document`` as revision 0."""
        self._snapshots = [bytes(document)]
        self._cursor = 0

    def clear(self) -> None:
        self._snapshots = []
        self._cursor = -1

    def push(self, document: bytes) -> int:
        """Commit a new revision after the cursor; returns the new cursor."""
        if self._cursor < 0:
            self.load(document)
            return self._cursor
        dropped = len(self._snapshots) - (self._cursor + 1)
        if dropped:
            logger.info(f"[HISTORY] Pruning {dropped} redo snapshot(s)")
        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(bytes(document))
        self._cursor = len(self._snapshots) - 1
        return self._cursor

    def undo(self) -> Optional[bytes]:
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self.current

    def redo(self) -> Optional[bytes]:
        if not self.can_redo:
            return None
        self._cursor += 1
        return self.current
