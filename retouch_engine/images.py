"""Image payloads, data URLs and text overlay flattening."""

from __future__ import annotations

import base64
import binascii
import io
import time
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, ImageColor, ImageDraw, ImageFont, UnidentifiedImageError

_FORMAT_MIME_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}


@dataclass(frozen=True)
class ImageData:
    data: bytes = field(repr=False)
    mime_type: str = "image/png"

    @classmethod
    def from_data_url(cls, url: str) -> "ImageData":
        text = url.strip()
        if not text.startswith("data:") or "," not in text:
            raise ValueError("Expected a base64 data URL (data:<mime>;base64,<payload>).")
        header, payload = text[5:].split(",", 1)
        declared = header.split(";")
        if "base64" not in declared[1:]:
            raise ValueError("Only base64 data URLs are supported.")
        try:
            data = base64.b64decode("".join(payload.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 payload in data URL: {exc}") from exc
        mime_type = declared[0].strip() or sniff_mime_type(data)
        return cls(data=data, mime_type=mime_type.lower())

    @classmethod
    def from_base64(cls, payload: str, mime_type: str = "image/png") -> "ImageData":
        return cls(data=base64.b64decode(payload), mime_type=mime_type)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    def open(self) -> Image.Image:
        image = Image.open(io.BytesIO(self.data))
        image.load()
        return image

    @property
    def size(self) -> tuple[int, int]:
        with Image.open(io.BytesIO(self.data)) as image:
            return image.size

    @property
    def extension(self) -> str:
        subtype = self.mime_type.split("/", 1)[-1]
        if subtype in {"jpeg", "jpg"}:
            return "jpg"
        return subtype or "png"


def sniff_mime_type(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format or ""
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Unrecognized image data.") from exc
    return _FORMAT_MIME_TYPES.get(image_format.upper(), f"image/{image_format.lower() or 'png'}")


def load_image_file(path: str | Path) -> ImageData:
    """Read an image from disk; the MIME type comes from the content, not the suffix."""
    data = Path(path).expanduser().read_bytes()
    return ImageData(data=data, mime_type=sniff_mime_type(data))


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def write_image(image: ImageData, out_path: str | Path | None = None, out_dir: str | Path | None = None) -> Path:
    if out_path is not None:
        path = Path(out_path)
    else:
        base_dir = Path(out_dir) if out_dir else Path(".")
        path = base_dir / f"result-{int(time.time() * 1000)}.{image.extension}"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(image.data)
    return path


@dataclass
class TextOverlay:
    overlay_id: str
    text: str = "Text"
    font_family: str = "Arial"
    font_size: float = 5.0  # percent of image height
    color: str = "#FFFFFF"
    text_align: str = "center"
    x: float = 50.0  # percent of image width
    y: float = 50.0  # percent of image height


_ANCHORS = {"left": "lm", "center": "mm", "right": "rm"}


def flatten_text_overlays(image: ImageData, overlays: list[TextOverlay]) -> ImageData:
    """Bake overlays into a PNG copy of ``image``; the input is returned when there are none."""
    if not overlays:
        return image
    base = image.open().convert("RGBA")
    width, height = base.size
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    for overlay in overlays:
        if not overlay.text:
            continue
        font_px = max(1, int(round(height * overlay.font_size / 100.0)))
        font = _load_font(overlay.font_family, font_px)
        position = (width * overlay.x / 100.0, height * overlay.y / 100.0)
        anchor = _ANCHORS.get(overlay.text_align, "mm")
        fill = ImageColor.getrgb(overlay.color or "#FFFFFF")
        draw.text(position, overlay.text, fill=fill, font=font, anchor=anchor, align=overlay.text_align)
    flattened = Image.alpha_composite(base, layer)
    return ImageData(data=encode_png(flattened), mime_type="image/png")


def _load_font(family: str, size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    candidates = [family, f"{family}.ttf", f"{family.lower()}.ttf"] if family else []
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)
