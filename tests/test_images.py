from __future__ import annotations

import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from retouch_engine.images import (
    ImageData,
    TextOverlay,
    flatten_text_overlays,
    load_image_file,
    sniff_mime_type,
    write_image,
)


def _encoded(fmt: str, size=(40, 20), color=(0, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def test_data_url_mime_comes_from_declaration() -> None:
    payload = base64.b64encode(b"abc").decode("ascii")
    image = ImageData.from_data_url(f"data:image/webp;base64,{payload}")
    assert image.mime_type == "image/webp"
    assert image.data == b"abc"
    assert image.to_data_url() == f"data:image/webp;base64,{payload}"


def test_data_url_without_type_is_sniffed() -> None:
    jpeg = _encoded("JPEG")
    image = ImageData.from_data_url("data:;base64," + base64.b64encode(jpeg).decode("ascii"))
    assert image.mime_type == "image/jpeg"


@pytest.mark.parametrize("url", ["not a url", "data:image/png,rawtext", "data:image/png;base64,@@@"])
def test_bad_data_urls_rejected(url: str) -> None:
    with pytest.raises(ValueError):
        ImageData.from_data_url(url)


def test_load_image_file_sniffs_content_not_suffix(tmp_path: Path) -> None:
    path = tmp_path / "photo.png"
    path.write_bytes(_encoded("JPEG"))
    image = load_image_file(path)
    assert image.mime_type == "image/jpeg"
    assert image.extension == "jpg"
    assert image.size == (40, 20)


def test_sniff_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        sniff_mime_type(b"definitely not an image")


def test_write_image(tmp_path: Path) -> None:
    image = ImageData(_encoded("PNG"))
    out = write_image(image, out_path=tmp_path / "nested" / "out.png")
    assert out.read_bytes() == image.data
    generated = write_image(image, out_dir=tmp_path)
    assert generated.suffix == ".png"


def test_flatten_without_overlays_returns_input() -> None:
    image = ImageData(_encoded("JPEG"), "image/jpeg")
    assert flatten_text_overlays(image, []) is image


def test_flatten_bakes_text_into_png() -> None:
    image = ImageData(_encoded("PNG", size=(200, 100)), "image/png")
    overlay = TextOverlay(overlay_id="t1", text="HELLO", font_size=30, color="#FFFFFF")

    flattened = flatten_text_overlays(image, [overlay])

    assert flattened.mime_type == "image/png"
    result = flattened.open().convert("RGB")
    assert result.size == (200, 100)
    # White text drawn around the centre on a black background.
    assert max(result.crop((50, 30, 150, 70)).getdata()) != (0, 0, 0)
    assert result.getpixel((2, 2)) == (0, 0, 0)
