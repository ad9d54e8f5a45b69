"""
QR Service - renders QR images for tracked URLs
"""
import io
import logging
from typing import Tuple

import qrcode
import qrcode.image.svg

logger = logging.getLogger(__name__)

MIN_SIZE = 128
MAX_SIZE = 1024
# 21 modules for version 1 plus a 4-module quiet zone on each side
_MIN_MODULES = 29

FORMATS = {"svg": "image/svg+xml", "png": "image/png"}


def clamp_size(size: int) -> int:
    return max(MIN_SIZE, min(MAX_SIZE, int(size)))


def render_qr(data: str, fmt: str = "svg", size: int = 512) -> Tuple[bytes, str]:
    """Render ``data`` as a QR image; returns (bytes, media type)"""
    fmt = (fmt or "svg").lower()
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported QR format {fmt!r}")

    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=max(1, clamp_size(size) // _MIN_MODULES),
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    if fmt == "svg":
        img = qr.make_image(image_factory=qrcode.image.svg.SvgPathImage)
    else:
        img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer)
    return buffer.getvalue(), FORMATS[fmt]
