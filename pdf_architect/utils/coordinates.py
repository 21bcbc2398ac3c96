"""
Coordinate mapping between the three spaces the editor deals with:

- screen pixels of the rendered page surface (pointer events),
- percentages of the page (selections and edit instructions),
- PDF points of a concrete page (drawing).

Screen selections are percentages measured from the TOP-left corner with Y
growing downward. Edit instructions and PDF user space measure Y from the
BOTTOM. Every conversion that touches Y takes an explicit ``Axis`` so call
sites never have to remember which convention they hold.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple


class Axis(Enum):
    TOP_DOWN = "top_down"     # screen / raster: y=0 at the top
    BOTTOM_UP = "bottom_up"   # PDF user space: y=0 at the bottom


@dataclass(frozen=True)
class SelectionArea:
    """Rectangle in screen percentages (top-down)."""
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def normalized(self) -> "SelectionArea":
        return SelectionArea(
            x1=min(self.x1, self.x2),
            y1=min(self.y1, self.y2),
            x2=max(self.x1, self.x2),
            y2=max(self.y1, self.y2),
        )

    def clamped(self) -> "SelectionArea":
        return replace(
            self,
            x1=_clamp(self.x1), y1=_clamp(self.y1),
            x2=_clamp(self.x2), y2=_clamp(self.y2),
        )

    def offset(self, dx: float = 0.0, dy: float = 0.0) -> "SelectionArea":
        return SelectionArea(self.x1 + dx, self.y1 + dy, self.x2 + dx, self.y2 + dy)


@dataclass(frozen=True)
class PointerEvent:
    """A mouse-style point or a touch-style point list, in client pixels."""
    client_x: float = 0.0
    client_y: float = 0.0
    touches: Optional[Sequence[Tuple[float, float]]] = None


@dataclass(frozen=True)
class SurfaceBounds:
    """On-screen bounding box of the rendered page surface."""
    left: float
    top: float
    width: float
    height: float


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def to_percent(event: PointerEvent, bounds: Optional[SurfaceBounds]) -> Tuple[float, float]:
    """Rescale a pointer position to percentages of the page surface (top-down).

    Touch events use their first touch point. Returns (0, 0) when no surface
    is mounted.
    """
    if bounds is None or bounds.width <= 0 or bounds.height <= 0:
        return 0.0, 0.0
    if event.touches:
        client_x, client_y = event.touches[0]
    else:
        client_x, client_y = event.client_x, event.client_y
    return (
        (client_x - bounds.left) / bounds.width * 100,
        (client_y - bounds.top) / bounds.height * 100,
    )


def percent_rect_to_pixel_rect(
    selection: SelectionArea,
    surface_size: Tuple[int, int],
) -> Tuple[int, int, int, int]:
    """Map a top-down percentage rectangle to a (left, top, right, bottom) pixel box.

    Out-of-range percentages are clipped to the raster, so the box may come
    back empty (right <= left or bottom <= top).
    """
    width_px, height_px = surface_size
    sel = selection.normalized()
    left = round(_clamp(sel.x1) / 100 * width_px)
    top = round(_clamp(sel.y1) / 100 * height_px)
    right = round(_clamp(sel.x2) / 100 * width_px)
    bottom = round(_clamp(sel.y2) / 100 * height_px)
    return left, top, right, bottom


def flip_y(y_percent: float, source: Axis, target: Axis) -> float:
    """Convert a Y percentage between axis conventions."""
    if source == target:
        return y_percent
    return 100.0 - y_percent


def percent_to_points(
    x_percent: float,
    y_percent: float,
    page_width: float,
    page_height: float,
    axis: Axis = Axis.BOTTOM_UP,
) -> Tuple[float, float]:
    """Percentages of a page to PDF points in bottom-up user space."""
    y_bottom_up = flip_y(y_percent, axis, Axis.BOTTOM_UP)
    return x_percent / 100 * page_width, y_bottom_up / 100 * page_height


def percent_size_to_points(
    width_percent: float,
    height_percent: float,
    page_width: float,
    page_height: float,
) -> Tuple[float, float]:
    return width_percent / 100 * page_width, height_percent / 100 * page_height


def selection_to_document_box(selection: SelectionArea) -> Tuple[float, float, float, float]:
    """Screen selection -> bottom-up (x, y, width, height) percentages.

    The anchor is the selection's bottom-left corner, i.e. y = 100 - y2.
    """
    sel = selection.normalized()
    return (
        sel.x1,
        flip_y(sel.y2, Axis.TOP_DOWN, Axis.BOTTOM_UP),
        sel.width,
        sel.height,
    )
