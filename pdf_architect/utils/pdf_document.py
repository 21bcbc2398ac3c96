# File: pdf_architect/utils/pdf_document.py
import logging

import fitz  # PyMuPDF
from PIL import Image

from pdf_architect.core.errors import DocumentLoadError

logger = logging.getLogger(__name__)


def open_pdf(pdf_bytes: bytes) -> fitz.Document:
    """Open a PDF from bytes. PyMuPDF works on its own copy, the buffer is never touched."""
    try:
        doc = fitz.open(stream=bytes(pdf_bytes), filetype="pdf")
    except Exception as e:
        raise DocumentLoadError(f"Not a readable PDF: {e}") from e
    if not doc.is_pdf or doc.page_count < 1:
        doc.close()
        raise DocumentLoadError("Document has no pages")
    return doc


def inspect_pdf(pdf_bytes: bytes) -> int:
    """Validate an upload and return its page count."""
    doc = open_pdf(pdf_bytes)
    try:
        return doc.page_count
    finally:
        doc.close()


def save_pdf(doc: fitz.Document) -> bytes:
    return doc.tobytes(garbage=4, deflate=True)


def clamp_page_number(page_number: int, page_count: int) -> int:
    return min(max(1, page_number), page_count)


def render_page(pdf_bytes: bytes, page_number: int, scale: float = 2.0) -> Image.Image:
    """Rasterize one page (1-based) to an RGB image."""
    doc = open_pdf(pdf_bytes)
    try:
        page = doc[clamp_page_number(page_number, doc.page_count) - 1]
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
        logger.info(f"[RENDER] Page {page_number} rendered at scale {scale}: {pix.width}x{pix.height}")
        return image
    finally:
        doc.close()


def extract_context_text(pdf_bytes: bytes, max_pages: int = 5, max_chars: int = 3000) -> str:
    """Plain text of the first few pages, cut to a bounded prefix for prompts."""
    doc = open_pdf(pdf_bytes)
    try:
        full_text = ""
        for page in doc.pages(0, min(max_pages, doc.page_count)):
            text = page.get_text("text")
            if text:
                full_text += text + "\n\n"
            if len(full_text) >= max_chars:
                break
        logger.info(f"Extracted {len(full_text)} characters of context from PDF")
        return full_text[:max_chars]
    finally:
        doc.close()
