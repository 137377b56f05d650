"""Read image dimensions from the first few KB of a PNG or JPEG file.

Only the header is needed, so callers fetch a small byte range instead of the
whole asset. None means "unknown", never an error.
"""

import struct

from .models import Dimensions

SNIFF_BYTES = 4096

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# SOF markers that carry frame dimensions (C4, C8 and CC are not frames)
JPEG_SOF_MARKERS = frozenset(
    [0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF]
)
JPEG_EOI = 0xD9
JPEG_SOS = 0xDA


def sniff_dimensions(data: bytes) -> Dimensions | None:
    if len(data) < 10:
        return None
    return _png_dimensions(data) or _jpeg_dimensions(data)


def _png_dimensions(data: bytes) -> Dimensions | None:
    if len(data) < 24 or not data.startswith(PNG_SIGNATURE):
        return None
    if data[12:16] != b"IHDR":
        return None
    width, height = struct.unpack(">II", data[16:24])
    return Dimensions(width, height) if width and height else None


def _jpeg_dimensions(data: bytes) -> Dimensions | None:
    if data[0] != 0xFF or data[1] != 0xD8:
        return None
    offset = 2
    while offset + 4 < len(data):
        if data[offset] != 0xFF:
            offset += 1
            continue
        marker = data[offset + 1]
        offset += 2
        if marker in (JPEG_EOI, JPEG_SOS):
            break
        if marker == 0xFF:
            # Fill byte: the second 0xFF starts the real marker
            offset -= 1
            continue
        if marker == 0x01 or 0xD0 <= marker <= 0xD7:
            # Standalone markers have no length field
            continue
        if offset + 2 > len(data):
            break
        (length,) = struct.unpack(">H", data[offset : offset + 2])
        if length < 2:
            break
        if marker in JPEG_SOF_MARKERS:
            if offset + 7 > len(data):
                break
            height, width = struct.unpack(">HH", data[offset + 3 : offset + 7])
            return Dimensions(width, height) if width and height else None
        offset += length
    return None
