from __future__ import annotations

import random
import struct
import zlib
from io import BytesIO

from PIL import Image


def encode(img: Image.Image, fmt: str = "PNG") -> bytes:
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def decode(content: bytes) -> Image.Image:
    img = Image.open(BytesIO(content))
    img.load()
    return img


def solid_png(size: tuple[int, int], color: tuple[int, int, int, int] = (90, 90, 90, 255)) -> bytes:
    return encode(Image.new("RGBA", size, color))


def half_transparent_png(size: tuple[int, int] = (1000, 800)) -> bytes:
    """Left half fully transparent, right half opaque red."""
    w, h = size
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    img.paste(Image.new("RGBA", (w - w // 2, h), (255, 0, 0, 255)), (w // 2, 0))
    return encode(img)


def broken_png(size: tuple[int, int] = (64, 64)) -> bytes:
    """
    A PNG whose header parses but whose image data is split across an IDAT
    chunk and a chunk with an invalid type, so decoding fails in load().
    """
    w, h = size
    noise = random.Random(0).randbytes(w * h * 4)
    png = encode(Image.frombytes("RGBA", size, noise))

    out = png[:8]
    pos = 8
    while pos < len(png):
        (length,) = struct.unpack(">I", png[pos : pos + 4])
        cid = png[pos + 4 : pos + 8]
        data = png[pos + 8 : pos + 8 + length]
        pos += 12 + length
        if cid == b"IDAT":
            half = len(data) // 2
            out += _chunk(b"IDAT", data[:half]) + _chunk(b"\x00\x01\x02\x03", data[half:])
        else:
            out += _chunk(cid, data)
    return out


def _chunk(cid: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + cid + data + struct.pack(">I", zlib.crc32(cid + data) & 0xFFFFFFFF)
