from __future__ import annotations

import base64
import binascii
import re
from io import BytesIO
from typing import Union

from PIL import Image

from poster_studio.errors import ImageLoadError

ImageSource = Union[str, bytes, Image.Image]

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*);base64,(?P<payload>.*)$", re.DOTALL)


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """
    Split `data:<mime>;base64,<payload>` into its MIME type and decoded bytes.
    """
    m = _DATA_URL_RE.match((data_url or "").strip())
    if not m:
        raise ImageLoadError("Invalid data URL format for parsing.")
    try:
        payload = base64.b64decode(m.group("payload"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageLoadError(f"Invalid base64 payload in data URL: {exc}") from exc
    return m.group("mime") or "application/octet-stream", payload


def to_data_url(content: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


def open_image(source: ImageSource) -> Image.Image:
    """
    Decode a data URL, raw encoded bytes, or an already-open PIL image into RGBA.

    Decoding is forced eagerly so a corrupt payload fails here, not at first draw.
    """
    if isinstance(source, Image.Image):
        return source.convert("RGBA")

    if isinstance(source, str):
        _, content = parse_data_url(source)
    elif isinstance(source, (bytes, bytearray)):
        content = bytes(source)
    else:
        raise ImageLoadError(f"Unsupported image source type: {type(source).__name__}")

    if not content:
        raise ImageLoadError("Image payload is empty")
    try:
        img = Image.open(BytesIO(content))
        img.load()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        # PNG chunk corruption surfaces as SyntaxError from load().
        raise ImageLoadError(f"Failed to decode image: {exc}") from exc
    return img.convert("RGBA")


def image_to_data_url(img: Image.Image, fmt: str = "PNG") -> str:
    buf = BytesIO()
    fmt = fmt.upper()
    if fmt == "JPEG":
        img.convert("RGB").save(buf, format="JPEG", quality=90)
        return to_data_url(buf.getvalue(), "image/jpeg")
    img.save(buf, format="PNG")
    return to_data_url(buf.getvalue(), "image/png")
