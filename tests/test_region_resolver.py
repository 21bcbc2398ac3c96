import asyncio
import io

import pytest
from PIL import Image

from pdf_architect.core.errors import RegionError
from pdf_architect.services.region_resolver import (
    RegionContent,
    crop_selection,
    is_no_text,
    layout_text_in_region,
    resolve_region,
)
from pdf_architect.utils.coordinates import SelectionArea
from pdf_architect.utils.pdf_document import render_page


def fake_ocr(answer):
    seen = []

    async def ocr(image_bytes):
        seen.append(image_bytes)
        return answer

    ocr.seen = seen
    return ocr


# ── Cropping ──────────────────────────────────────────────────────────────────

def test_crop_is_jpeg_of_selection_size():
    raster = Image.new("RGB", (1000, 1400), "white")
    data = crop_selection(raster, SelectionArea(10, 10, 50, 30))
    with Image.open(io.BytesIO(data)) as crop:
        assert crop.format == "JPEG"
        assert crop.size == (400, 280)


def test_crop_converts_non_rgb_rasters():
    raster = Image.new("RGBA", (200, 200), (255, 0, 0, 128))
    data = crop_selection(raster, SelectionArea(0, 0, 50, 50))
    with Image.open(io.BytesIO(data)) as crop:
        assert crop.mode == "RGB"


@pytest.mark.parametrize("sel", [SelectionArea(10, 10, 10, 30), SelectionArea(101, 0, 120, 50)])
def test_empty_crop_raises(sel):
    with pytest.raises(RegionError):
        crop_selection(Image.new("RGB", (100, 100)), sel)


# ── Selected text policy ──────────────────────────────────────────────────────

@pytest.mark.parametrize("text,expected", [
    ("No text found", True),
    ("  no text found.  ", True),
    ("", True),
    (None, True),
    ("Acme Corp", False),
])
def test_is_no_text(text, expected):
    assert is_no_text(text) is expected


def test_selected_text_prefers_ocr_then_layout():
    base = dict(selection=SelectionArea(0, 0, 1, 1), page_number=1, image=b"")
    assert RegionContent(ocr_text=" Acme ", layout_text="Other", **base).selected_text == "Acme"
    assert RegionContent(ocr_text="No text found", layout_text="Acme Corp", **base).selected_text == "Acme Corp"
    failed = RegionContent(ocr_text="", layout_text="Acme Corp", ocr_error="timeout", **base)
    assert failed.selected_text == ""


# ── Layout text ───────────────────────────────────────────────────────────────

def test_layout_text_inside_selection(acme_pdf):
    # 'Acme Corp' baseline sits ~11.6% from the top, x ~16%
    text = layout_text_in_region(acme_pdf, 1, SelectionArea(5, 5, 60, 13))
    assert "Acme Corp" in text
    assert "Quarterly" not in text


def test_layout_text_out_of_range_or_unreadable(acme_pdf):
    assert layout_text_in_region(acme_pdf, 7, SelectionArea(0, 0, 100, 100)) == ""
    assert layout_text_in_region(b"junk", 1, SelectionArea(0, 0, 100, 100)) == ""


# ── resolve_region ────────────────────────────────────────────────────────────

def test_resolve_region_runs_ocr_on_the_crop(acme_pdf):
    raster = render_page(acme_pdf, 1, 1.0)
    ocr = fake_ocr("Acme Corp")
    sel = SelectionArea(5, 5, 60, 13)
    region = asyncio.run(resolve_region(raster, sel, ocr, page_number=1, pdf_bytes=acme_pdf))
    assert len(ocr.seen) == 1
    assert ocr.seen[0] == region.image
    assert region.has_ocr_text
    assert region.selected_text == "Acme Corp"
    assert "Acme Corp" in region.layout_text


def test_resolve_region_falls_back_to_layout_text(acme_pdf):
    raster = render_page(acme_pdf, 1, 1.0)
    region = asyncio.run(resolve_region(
        raster, SelectionArea(5, 5, 60, 13), fake_ocr("No text found"), pdf_bytes=acme_pdf,
    ))
    assert not region.has_ocr_text
    assert region.selected_text == "Acme Corp"


def test_ocr_failure_is_recorded_not_raised():
    async def failing_ocr(image_bytes):
        raise RuntimeError("vision backend down")

    region = asyncio.run(resolve_region(
        Image.new("RGB", (100, 100), "white"), SelectionArea(10, 10, 50, 50), failing_ocr,
    ))
    assert region.image
    assert region.ocr_text == ""
    assert "vision backend down" in region.ocr_error
    assert region.selected_text == ""


def test_resolve_region_raises_on_empty_crop():
    with pytest.raises(RegionError):
        asyncio.run(resolve_region(
            Image.new("RGB", (100, 100)), SelectionArea(10, 10, 10, 10), fake_ocr("x"),
        ))
