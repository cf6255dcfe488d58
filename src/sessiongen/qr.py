from __future__ import annotations

import qrcode
from qrcode.image.svg import SvgPathImage


def qr_svg(payload: str, *, box_size: int = 10, border: int = 2) -> bytes:
    """Render a pairing QR payload as a standalone SVG document."""

    qr = qrcode.QRCode(box_size=box_size, border=border, image_factory=SvgPathImage)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image()
    return img.to_string(encoding="utf-8")
