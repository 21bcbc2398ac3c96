"""
Edit Applicator: renders a batch of edit instructions into a new PDF revision.

Approach:
1. Open the original bytes once as the in-progress document
2. Narrow every instruction to a typed operation, strictly in input order
3. Resolve geometry: percentages of the target page's own size, Y bottom-up,
   or the located run for REPLACE_TEXT (always looked up in the ORIGINAL bytes)
4. Draw into the page through PyMuPDF's top-down space
5. Save once -> new bytes; the input buffer is never modified

A failing instruction (image fetch, embed) is logged and skipped; the rest of
the batch still lands.
"""

import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
import httpx
from PIL import Image

from pdf_architect.core.config import settings
from pdf_architect.schemas.edit import EditInstruction, ShapeType
from pdf_architect.services.edit_operations import (
    DEFAULT_FONT_SIZE,
    DEFAULT_IMAGE_FRACTION,
    SHAPE_FILL,
    SHAPE_OPACITY,
    WHITE,
    AddShapeOp,
    AddTextOp,
    EditOperation,
    NoOp,
    PlaceImageOp,
    ReplaceTextOp,
    to_operation,
)
from pdf_architect.services.text_locator import locate
from pdf_architect.utils.coordinates import Axis, percent_size_to_points, percent_to_points
from pdf_architect.utils.pdf_document import clamp_page_number, open_pdf, save_pdf

logger = logging.getLogger(__name__)

FONT_NAME = "helv"  # one fixed face for every drawn string

ImageFetcher = Callable[[str], Awaitable[bytes]]


@dataclass
class ApplyReport:
    applied: List[int] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)


# ─── Geometry ───────────────────────────────────────────────────────────────

def _page_point(page: fitz.Page, x: float, y: float) -> fitz.Point:
    """PDF user-space point (bottom-up) -> PyMuPDF page space (top-down)."""
    return fitz.Point(x, y) * page.transformation_matrix


def _page_rect(page: fitz.Page, x: float, y: float, width: float, height: float) -> fitz.Rect:
    """Bottom-up box anchored at its lower-left corner -> PyMuPDF rect."""
    p1 = _page_point(page, x, y)
    p2 = _page_point(page, x + width, y + height)
    return fitz.Rect(p1, p2).normalize()


def _percent_box(page: fitz.Page, op_placement) -> Tuple[float, float, float, float]:
    """Percent placement -> user-space box, measured from the visible page's lower-left corner."""
    visible = page.rect
    dx, dy = percent_to_points(op_placement.x, op_placement.y, visible.width, visible.height, Axis.BOTTOM_UP)
    w, h = percent_size_to_points(op_placement.width, op_placement.height, visible.width, visible.height)
    # anchor in page space, then back to user space
    anchor = fitz.Point(visible.x0 + dx, visible.y1 - dy) * ~page.transformation_matrix
    return anchor.x, anchor.y, w, h


# ─── Images ─────────────────────────────────────────────────────────────────

async def fetch_image_bytes(url: str) -> bytes:
    """Fetch image bytes from a data: URL or over HTTP."""
    if url.startswith("data:"):
        header, _, payload = url.partition(",")
        if ";base64" in header:
            return base64.b64decode(payload)
        return payload.encode("latin-1")
    async with httpx.AsyncClient(timeout=settings.IMAGE_FETCH_TIMEOUT, follow_redirects=True) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.content


def sniff_image_format(image_url: Optional[str], image_bytes: Optional[bytes] = None) -> str:
    """PNG when the URL mentions png (or raw bytes carry the PNG signature), else JPEG."""
    if image_url:
        # only the media-type header of a data: URL; base64 payloads can spell "png"
        hint = image_url.partition(",")[0] if image_url.startswith("data:") else image_url
        return "PNG" if "png" in hint.lower() else "JPEG"
    if image_bytes and image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "PNG"
    return "JPEG"


def _check_image(data: bytes, fmt: str) -> None:
    """Raise if ``data`` is not an image of format ``fmt``."""
    with Image.open(io.BytesIO(data), formats=[fmt]) as im:
        im.verify()


# ─── Renderers ──────────────────────────────────────────────────────────────

def _draw_replace_text(page: fitz.Page, op: ReplaceTextOp, original: bytes, page_number: int) -> None:
    x, y, width, height = _percent_box(page, op.placement)
    font_size = op.font_size

    if op.target_text:
        match = locate(original, page_number, op.target_text)
        if match:
            x, y, width, height = match.x, match.y, match.width, match.height
            font_size = op.font_size or match.font_size

    # White out the old text area
    page.draw_rect(
        _page_rect(page, x - 1, y - 1, width + 2, height + 2),
        color=None,
        fill=WHITE,
        overlay=True,
    )
    page.insert_text(
        _page_point(page, x, y),
        op.new_text,
        fontsize=font_size or DEFAULT_FONT_SIZE,
        fontname=FONT_NAME,
        color=op.color,
        overlay=True,
    )


def _draw_text(page: fitz.Page, op: AddTextOp) -> None:
    x, y, _w, _h = _percent_box(page, op.placement)
    page.insert_text(
        _page_point(page, x, y),
        op.text,
        fontsize=op.font_size,
        fontname=FONT_NAME,
        color=op.color,
        overlay=True,
    )


async def _draw_image(page: fitz.Page, op: PlaceImageOp, fetch: ImageFetcher) -> None:
    data = op.image_bytes if op.image_bytes else await fetch(op.image_url)
    fmt = sniff_image_format(op.image_url, op.image_bytes)
    _check_image(data, fmt)

    x, y, width, height = _percent_box(page, op.placement)
    width = width or page.rect.width * DEFAULT_IMAGE_FRACTION
    height = height or page.rect.height * DEFAULT_IMAGE_FRACTION
    page.insert_image(
        _page_rect(page, x, y, width, height),
        stream=data,
        keep_proportion=False,
        overlay=True,
    )


def _draw_shape(page: fitz.Page, op: AddShapeOp) -> bool:
    if op.shape != ShapeType.RECT:
        return False
    x, y, width, height = _percent_box(page, op.placement)
    page.draw_rect(
        _page_rect(page, x, y, width, height),
        color=None,
        fill=SHAPE_FILL,
        fill_opacity=SHAPE_OPACITY,
        overlay=True,
    )
    return True


# ─── Public API ─────────────────────────────────────────────────────────────

async def apply_edits_with_report(
    pdf_bytes: bytes,
    instructions: Sequence[EditInstruction],
    image_fetcher: Optional[ImageFetcher] = None,
) -> Tuple[bytes, ApplyReport]:
    """Apply ``instructions`` in order; return the new bytes and what happened."""
    fetch = image_fetcher or fetch_image_bytes
    original = bytes(pdf_bytes)
    doc = open_pdf(original)
    report = ApplyReport()

    try:
        for index, instruction in enumerate(instructions):
            op: EditOperation = to_operation(instruction)
            page_number = clamp_page_number(op.page_number, doc.page_count)
            page = doc[page_number - 1]

            try:
                if isinstance(op, ReplaceTextOp):
                    _draw_replace_text(page, op, original, page_number)
                elif isinstance(op, AddTextOp):
                    _draw_text(page, op)
                elif isinstance(op, PlaceImageOp):
                    await _draw_image(page, op, fetch)
                elif isinstance(op, AddShapeOp):
                    if not _draw_shape(page, op):
                        report.skipped.append((index, f"shape {op.shape.value} not drawn"))
                        continue
                elif isinstance(op, NoOp):
                    logger.info(f"[APPLY] #{index} skipped: {op.reason}")
                    report.skipped.append((index, op.reason))
                    continue
            except Exception as e:
                logger.error(
                    f"[APPLY] #{index} {instruction.action.value} failed on page {page_number}: {e}",
                    exc_info=True,
                )
                report.skipped.append((index, str(e)))
                continue

            report.applied.append(index)
            logger.info(f"[APPLY] #{index} {instruction.action.value} applied on page {page_number}")

        result = save_pdf(doc)
    finally:
        doc.close()

    logger.info(
        f"[APPLY] Batch done: {report.applied_count} applied, {len(report.skipped)} skipped"
    )
    return result, report


async def apply_edits(
    pdf_bytes: bytes,
    instructions: Sequence[EditInstruction],
    image_fetcher: Optional[ImageFetcher] = None,
) -> bytes:
    result, _report = await apply_edits_with_report(pdf_bytes, instructions, image_fetcher)
    return result


def resave_document(pdf_bytes: bytes) -> bytes:
    """Open and save with no edits: the baseline an empty batch reproduces."""
    doc = open_pdf(pdf_bytes)
    try:
        return save_pdf(doc)
    finally:
        doc.close()
