"""
Typed edit operations.

``EditInstruction`` is the loose wire format shared with the model: one flat
parameters bag for every action kind. Before anything is drawn each
instruction is narrowed to exactly one of the operations below, each carrying
only the fields its renderer reads.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from pdf_architect.schemas.edit import ActionKind, EditInstruction, ShapeType

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]

BLACK: RGB = (0.0, 0.0, 0.0)
WHITE: RGB = (1.0, 1.0, 1.0)
SHAPE_FILL: RGB = (0.9, 0.9, 0.9)
SHAPE_OPACITY = 0.5
DEFAULT_FONT_SIZE = 12.0
DEFAULT_IMAGE_FRACTION = 0.25


def hex_to_rgb(hex_color: Optional[str]) -> RGB:
    """'#ff0000' -> (1.0, 0.0, 0.0). Anything unparseable is black."""
    if not hex_color:
        return BLACK
    m = re.match(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", hex_color.strip(), re.IGNORECASE)
    if not m:
        return BLACK
    return tuple(int(part, 16) / 255 for part in m.groups())


@dataclass(frozen=True)
class Placement:
    """Percent geometry, bottom-up: (x, y) is the lower-left anchor."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class ReplaceTextOp:
    page_number: int
    new_text: str
    placement: Placement
    target_text: Optional[str] = None
    font_size: Optional[float] = None
    color: RGB = BLACK


@dataclass(frozen=True)
class AddTextOp:
    page_number: int
    text: str
    placement: Placement
    font_size: float = DEFAULT_FONT_SIZE
    color: RGB = BLACK


@dataclass(frozen=True)
class PlaceImageOp:
    page_number: int
    placement: Placement
    image_url: Optional[str] = None
    image_bytes: Optional[bytes] = None


@dataclass(frozen=True)
class AddShapeOp:
    page_number: int
    shape: ShapeType
    placement: Placement


@dataclass(frozen=True)
class NoOp:
    page_number: int
    reason: str


EditOperation = Union[ReplaceTextOp, AddTextOp, PlaceImageOp, AddShapeOp, NoOp]


def to_operation(instruction: EditInstruction) -> EditOperation:
    """Narrow a wire instruction to the operation its action kind describes."""
    params = instruction.parameters
    page = instruction.page_number
    placement = Placement(
        x=params.x or 0.0,
        y=params.y or 0.0,
        width=params.width or 0.0,
        height=params.height or 0.0,
    )
    action = instruction.action

    if action == ActionKind.REPLACE_TEXT:
        return ReplaceTextOp(
            page_number=page,
            new_text=params.new_text or "",
            placement=placement,
            target_text=params.target_text or None,
            font_size=params.font_size or None,
            color=hex_to_rgb(params.color),
        )

    if action in (ActionKind.ADD_IMAGE, ActionKind.GENERATE_IMAGE):
        if not params.image_url and not params.image_bytes:
            return NoOp(page, f"{action.value} without a resolved image")
        return PlaceImageOp(
            page_number=page,
            placement=placement,
            image_url=params.image_url,
            image_bytes=params.image_bytes,
        )

    if action == ActionKind.ADD_SHAPE:
        try:
            shape = ShapeType((params.shape_type or "").lower())
        except ValueError:
            return NoOp(page, f"unsupported shape {params.shape_type!r}")
        return AddShapeOp(page_number=page, shape=shape, placement=placement)

    # ADD_TEXT, and UNKNOWN actions that still carry text, draw plain text.
    if action == ActionKind.ADD_TEXT or (action == ActionKind.UNKNOWN and params.new_text):
        return AddTextOp(
            page_number=page,
            text=params.new_text or "",
            placement=placement,
            font_size=params.font_size or DEFAULT_FONT_SIZE,
            color=hex_to_rgb(params.color),
        )

    # TODO: DELETE_TEXT could mask the located run like REPLACE_TEXT once the
    # product decides deletion should white out glyphs.
    return NoOp(page, f"{action.value} has no rendering")
