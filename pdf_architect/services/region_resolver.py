"""
Region Content Resolver: turns a committed selection into content.

1. Crop the rendered page raster to the selection and encode it as JPEG
2. Hand the crop to the OCR capability; its text is the canonical selected text
3. Also collect the layout text the PDF itself has inside the region
"""

import io
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import fitz  # PyMuPDF
from PIL import Image

from pdf_architect.core.errors import DocumentLoadError, RegionError
from pdf_architect.utils.coordinates import SelectionArea, percent_rect_to_pixel_rect
from pdf_architect.utils.pdf_document import open_pdf

logger = logging.getLogger(__name__)

NO_TEXT_SENTINEL = "No text found"

OcrFunction = Callable[[bytes], Awaitable[str]]


def is_no_text(text: Optional[str]) -> bool:
    """OCR output that means 'nothing readable' rather than literal content."""
    if not text or not text.strip():
        return True
    return NO_TEXT_SENTINEL.lower() in text.strip().lower()


@dataclass
class RegionContent:
    selection: SelectionArea
    page_number: int
    image: bytes              # JPEG crop of the rendered page
    ocr_text: str = ""
    layout_text: str = ""
    ocr_error: Optional[str] = None

    @property
    def has_ocr_text(self) -> bool:
        return not is_no_text(self.ocr_text)

    @property
    def selected_text(self) -> str:
        """OCR text, or the layout text when OCR read nothing. Empty after an OCR failure."""
        if self.ocr_error:
            return ""
        if self.has_ocr_text:
            return self.ocr_text.strip()
        return self.layout_text.strip()


def crop_selection(raster: Image.Image, selection: SelectionArea, quality: int = 85) -> bytes:
    """Cut the selection out of the page raster and encode it as JPEG."""
    box = percent_rect_to_pixel_rect(selection, raster.size)
    left, top, right, bottom = box
    if right <= left or bottom <= top:
        raise RegionError(f"Selection {selection} covers no pixels of a {raster.size} raster")
    crop = raster.crop(box)
    if crop.mode != "RGB":
        crop = crop.convert("RGB")
    buf = io.BytesIO()
    crop.save(buf, format="JPEG", quality=quality)
    logger.info(f"[REGION] Cropped {crop.size[0]}x{crop.size[1]} px from {raster.size[0]}x{raster.size[1]}")
    return buf.getvalue()


def layout_text_in_region(pdf_bytes: bytes, page_number: int, selection: SelectionArea) -> str:
    """Text the PDF's own text layer holds inside the selection."""
    try:
        doc = open_pdf(pdf_bytes)
    except DocumentLoadError as e:
        logger.warning(f"[REGION] Layout text unavailable: {e}")
        return ""
    try:
        if not 1 <= page_number <= doc.page_count:
            return ""
        page = doc[page_number - 1]
        sel = selection.normalized().clamped()
        r = page.rect
        clip = fitz.Rect(
            r.x0 + sel.x1 / 100 * r.width,
            r.y0 + sel.y1 / 100 * r.height,
            r.x0 + sel.x2 / 100 * r.width,
            r.y0 + sel.y2 / 100 * r.height,
        )
        return page.get_text("text", clip=clip).strip()
    finally:
        doc.close()


async def resolve_region(
    raster: Image.Image,
    selection: SelectionArea,
    ocr: OcrFunction,
    page_number: int = 1,
    pdf_bytes: Optional[bytes] = None,
    quality: int = 85,
) -> RegionContent:
    """Crop, OCR and collect layout text for a committed selection.

    Raises RegionError when the crop fails. An OCR failure keeps the crop,
    leaves the OCR text empty and records the error on the result.
    """
    image = crop_selection(raster, selection, quality=quality)
    layout_text = layout_text_in_region(pdf_bytes, page_number, selection) if pdf_bytes else ""
    content = RegionContent(
        selection=selection,
        page_number=page_number,
        image=image,
        layout_text=layout_text,
    )
    try:
        content.ocr_text = (await ocr(image)) or ""
    except Exception as e:
        logger.error(f"[OCR] Visual OCR failed: {e}")
        content.ocr_error = str(e)
        return content
    logger.info(f"[OCR] Read {len(content.ocr_text)} chars from selection")
    return content
