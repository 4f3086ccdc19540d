from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from retouch_engine.mask.encoder import MaskEncoder


def _paint(encoder: MaskEncoder) -> bytes | None:
    encoder.begin_stroke()
    encoder.add_segment((20, 20), (60, 40), 10)
    encoder.add_segment((60, 40), (70, 80), 10)
    return encoder.end_stroke()


def _alpha(raster: Image.Image) -> np.ndarray:
    return np.asarray(raster.getchannel("A"), dtype=np.int32)


def test_erase_and_protect_alpha_are_inverses() -> None:
    erase = MaskEncoder(100, 120, "erase")
    protect = MaskEncoder(100, 120, "protect")
    _paint(erase)
    _paint(protect)

    erase_alpha = _alpha(erase.export_raster())
    protect_alpha = _alpha(protect.export_raster())

    assert set(np.unique(erase_alpha)) <= {0, 255}
    assert np.array_equal(erase_alpha, 255 - protect_alpha)


def test_export_polarity() -> None:
    erase = MaskEncoder(100, 100, "erase")
    protect = MaskEncoder(100, 100, "protect")
    _paint(erase)
    _paint(protect)

    # (40, 30) lies on the first segment; (90, 5) is never painted.
    assert erase.export_raster().getpixel((40, 30))[3] == 0
    assert erase.export_raster().getpixel((90, 5)) == (0, 0, 0, 255)
    assert protect.export_raster().getpixel((40, 30)) == (255, 255, 255, 255)
    assert protect.export_raster().getpixel((90, 5)) == (0, 0, 0, 0)


def test_display_raster_matches_coverage() -> None:
    encoder = MaskEncoder(100, 100, "protect")
    _paint(encoder)
    display = encoder.display_raster()
    assert display.getpixel((40, 30)) == (239, 68, 68, 153)
    assert display.getpixel((90, 5))[3] == 0
    assert np.array_equal(_alpha(display) > 0, np.asarray(encoder.coverage_bitmap()) > 0)


def test_end_stroke_returns_png_with_surface_size() -> None:
    encoder = MaskEncoder(64, 48, "erase")
    png = _paint(encoder)
    assert png is not None
    with Image.open(io.BytesIO(png)) as image:
        assert image.format == "PNG"
        assert image.size == (64, 48)
        assert image.mode == "RGBA"


def test_end_stroke_without_stroke_returns_none() -> None:
    assert MaskEncoder(10, 10, "erase").end_stroke() is None


def test_resize_replays_normalized_strokes() -> None:
    encoder = MaskEncoder(100, 100, "protect")
    _paint(encoder)
    before = encoder.coverage()

    encoder.resize(200, 200)

    assert encoder.export_raster().size == (200, 200)
    assert encoder.export_raster().getpixel((80, 60)) == (255, 255, 255, 255)
    assert encoder.coverage() == pytest.approx(before, rel=0.15)


def test_clear_and_coverage() -> None:
    encoder = MaskEncoder(50, 50, "erase")
    assert encoder.is_empty
    assert encoder.coverage() == 0.0
    _paint(encoder)
    assert not encoder.is_empty
    assert 0.0 < encoder.coverage() < 1.0
    encoder.clear()
    assert encoder.is_empty
    assert encoder.coverage() == 0.0


def test_invalid_surface_rejected() -> None:
    with pytest.raises(ValueError):
        MaskEncoder(0, 10, "erase")
    with pytest.raises(ValueError):
        MaskEncoder(10, 10, "invert")
