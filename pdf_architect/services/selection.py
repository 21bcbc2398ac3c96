"""
Selection state machine for the rectangular region drawn over a page.

States: IDLE, DRAWING, RESIZING(handle), MOVING. Coordinates are top-down
percentages of the page surface. They are not clamped while a gesture is in
progress; the committed selection is normalized and clamped on pointer-up.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from pdf_architect.utils.coordinates import SelectionArea

logger = logging.getLogger(__name__)

DEFAULT_HANDLE_TOLERANCE = 4.0  # percent; generous enough for touch input


class SelectionState(Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    RESIZING = "resizing"
    MOVING = "moving"


class Handle(Enum):
    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"


@dataclass(frozen=True)
class SelectionCommit:
    """Outcome of a pointer-up."""
    selection: Optional[SelectionArea]
    drawn: bool  # True when a new non-empty selection was drawn

    @property
    def needs_resolution(self) -> bool:
        return self.drawn and self.selection is not None and not self.selection.is_empty


class SelectionMachine:
    def __init__(self, handle_tolerance: float = DEFAULT_HANDLE_TOLERANCE) -> None:
        self.handle_tolerance = handle_tolerance
        self.state = SelectionState.IDLE
        self.handle: Optional[Handle] = None
        self.selection: Optional[SelectionArea] = None
        self._start: Optional[Tuple[float, float]] = None
        self._frozen: Optional[SelectionArea] = None

    @property
    def is_active(self) -> bool:
        return self.state != SelectionState.IDLE

    def clear(self) -> None:
        """Drop the selection and abandon any gesture (tool switch, new document)."""
        self.state = SelectionState.IDLE
        self.handle = None
        self.selection = None
        self._start = None
        self._frozen = None

    def hit_test(self, x: float, y: float) -> Tuple[Optional[Handle], bool]:
        """(handle under the point, whether the point is strictly inside the body)."""
        sel = self.selection
        if sel is None:
            return None, False
        tol = self.handle_tolerance
        corners = (
            (Handle.NW, sel.x1, sel.y1),
            (Handle.NE, sel.x2, sel.y1),
            (Handle.SW, sel.x1, sel.y2),
            (Handle.SE, sel.x2, sel.y2),
        )
        for handle, cx, cy in corners:
            if abs(x - cx) < tol and abs(y - cy) < tol:
                return handle, False
        inside = sel.x1 < x < sel.x2 and sel.y1 < y < sel.y2
        return None, inside

    def pointer_down(self, x: float, y: float) -> SelectionState:
        handle, inside = self.hit_test(x, y)
        self._start = (x, y)

        if handle is not None or inside:
            self._frozen = self.selection
            self.handle = handle
            self.state = SelectionState.RESIZING if handle else SelectionState.MOVING
            return self.state

        self.state = SelectionState.DRAWING
        self.handle = None
        self._frozen = None
        self.selection = None
        return self.state

    def pointer_move(self, x: float, y: float) -> Optional[SelectionArea]:
        if self.state == SelectionState.IDLE or self._start is None:
            return self.selection

        sx, sy = self._start
        if self.state == SelectionState.DRAWING:
            self.selection = SelectionArea(
                x1=min(sx, x), y1=min(sy, y),
                x2=max(sx, x), y2=max(sy, y),
            )
            return self.selection

        # Deltas are cumulative from drag start and applied to the frozen copy,
        # so intermediate moves cannot compound.
        base = self._frozen
        dx, dy = x - sx, y - sy
        if self.state == SelectionState.MOVING:
            self.selection = base.offset(dx, dy)
        elif self.handle == Handle.NW:
            self.selection = SelectionArea(base.x1 + dx, base.y1 + dy, base.x2, base.y2)
        elif self.handle == Handle.NE:
            self.selection = SelectionArea(base.x1, base.y1 + dy, base.x2 + dx, base.y2)
        elif self.handle == Handle.SW:
            self.selection = SelectionArea(base.x1 + dx, base.y1, base.x2, base.y2 + dy)
        elif self.handle == Handle.SE:
            self.selection = SelectionArea(base.x1, base.y1, base.x2 + dx, base.y2 + dy)
        return self.selection

    def pointer_up(self) -> SelectionCommit:
        was_drawing = self.state == SelectionState.DRAWING
        if self.selection is not None:
            self.selection = self.selection.normalized().clamped()
        self.state = SelectionState.IDLE
        self.handle = None
        self._start = None
        self._frozen = None
        commit = SelectionCommit(selection=self.selection, drawn=was_drawing)
        if commit.needs_resolution:
            logger.info(f"[SELECT] Committed selection {self.selection}")
        return commit
