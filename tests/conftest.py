import base64
import io

import fitz  # PyMuPDF
import pytest
from PIL import Image


def make_pdf(pages):
    """Build a PDF from [(width, height, [(text, x, y, size), ...]), ...].

    Text positions are PDF user-space points (origin bottom-left), i.e. the
    baseline origin a text layer reports as its transform translation.
    """
    doc = fitz.open()
    for width, height, texts in pages:
        page = doc.new_page(width=width, height=height)
        for text, x, y, size in texts:
            page.insert_text((x, height - y), text, fontsize=size, fontname="helv")
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def acme_pdf():
    """Letter page with 'Acme Corp' at (100, 700) size 12, plus a smaller second page."""
    return make_pdf([
        (612, 792, [("Acme Corp", 100, 700, 12), ("Quarterly report", 100, 650, 10)]),
        (300, 400, [("Second page", 20, 350, 9)]),
    ])


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (16, 16), "red").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_data_url(png_bytes):
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


def spans_on_page(pdf_bytes, page_index=0):
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        spans = []
        for block in doc[page_index].get_text("dict")["blocks"]:
            if block["type"] != 0:
                continue
            for line in block["lines"]:
                spans.extend(line["spans"])
        return spans
    finally:
        doc.close()


def find_span(pdf_bytes, text, page_index=0):
    for span in spans_on_page(pdf_bytes, page_index):
        if text in span["text"]:
            return span
    return None


def drawings_on_page(pdf_bytes, page_index=0):
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        return doc[page_index].get_drawings()
    finally:
        doc.close()


@pytest.fixture
def cropped_pdf():
    """Letter media box with a crop box offset by 100 pt; 'Boxed' at page-space (50, 60)."""
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    page.set_cropbox(fitz.Rect(100, 100, 512, 692))
    page.insert_text((50, 60), "Boxed", fontsize=12, fontname="helv")
    data = doc.tobytes()
    doc.close()
    return data
