"""
Text Locator: maps a string to its placement on a page.

The page's text layer is read as an ordered list of runs (PyMuPDF spans),
each with a placement transform in PDF user space (origin bottom-left). The
first run whose text contains the search string, case-insensitively, wins.
Repeated occurrences (running headers, footers) are not disambiguated.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import fitz  # PyMuPDF

from pdf_architect.core.errors import DocumentLoadError
from pdf_architect.utils.pdf_document import open_pdf

logger = logging.getLogger(__name__)

# (a, b, c, d, e, f): scaleX, skewY, skewX, scaleY, translateX, translateY
Transform = Tuple[float, float, float, float, float, float]


@dataclass
class TextRun:
    """One run of the text layer, in PDF points (bottom-up)."""
    text: str
    transform: Transform
    width: float


@dataclass
class TextMatch:
    """Where a located string sits, in PDF points (bottom-up)."""
    x: float
    y: float
    width: float
    height: float
    font_size: float


def _span_to_run(span: dict, to_pdf: fitz.Matrix) -> TextRun:
    size = float(span["size"])
    cos, sin = span.get("dir", (1.0, 0.0))
    # PyMuPDF reports dir in its top-down space; flip the sine for user space.
    sin = -sin
    origin = fitz.Point(span["origin"]) * to_pdf
    bbox = fitz.Rect(span["bbox"])
    width = bbox.width if abs(cos) >= abs(sin) else bbox.height
    return TextRun(
        text=span["text"],
        transform=(size * cos, size * sin, -size * sin, size * cos, origin.x, origin.y),
        width=width,
    )


def extract_text_runs(pdf_bytes: bytes, page_number: int) -> List[TextRun]:
    """Ordered text runs of one page (1-based). Empty for out-of-range pages."""
    doc = open_pdf(pdf_bytes)
    try:
        if not 1 <= page_number <= doc.page_count:
            logger.warning(f"[LOCATE] Page {page_number} out of range (1..{doc.page_count})")
            return []
        page = doc[page_number - 1]
        # transformation_matrix maps PDF user space -> PyMuPDF page space
        to_pdf = ~page.transformation_matrix
        runs: List[TextRun] = []
        blocks = page.get_text("dict", flags=fitz.TEXT_PRESERVE_WHITESPACE)["blocks"]
        for block in blocks:
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    if span["text"]:
                        runs.append(_span_to_run(span, to_pdf))
        return runs
    finally:
        doc.close()


def find_text(runs: List[TextRun], search_text: str) -> Optional[TextMatch]:
    """First run containing ``search_text`` (case-insensitive), as a TextMatch.

    The vertical scale of the run's transform doubles as font size and as the
    run height; it is not a true glyph bounding box.
    """
    if not search_text:
        return None
    needle = search_text.lower()
    for run in runs:
        if needle in run.text.lower():
            _a, _b, c, d, e, f = run.transform
            font_size = math.hypot(c, d)
            return TextMatch(x=e, y=f, width=run.width, height=font_size, font_size=font_size)
    return None


def locate(pdf_bytes: bytes, page_number: int, search_text: str) -> Optional[TextMatch]:
    """Locate ``search_text`` on a page. None means "fall back to given geometry"."""
    try:
        runs = extract_text_runs(pdf_bytes, page_number)
    except DocumentLoadError as e:
        logger.error(f"[LOCATE] Text finding error: {e}")
        return None
    match = find_text(runs, search_text)
    if match:
        logger.info(
            f"[LOCATE] '{search_text}' on page {page_number} at "
            f"({match.x:.1f}, {match.y:.1f}) size={match.font_size:.1f}"
        )
    else:
        logger.info(f"[LOCATE] '{search_text}' not found on page {page_number}")
    return match
