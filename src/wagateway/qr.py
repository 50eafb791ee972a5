from __future__ import annotations

import base64

import qrcode
from qrcode.image.svg import SvgImage

DATA_URL_PREFIX = "data:image/svg+xml;base64,"


def render_qr_svg(payload: str) -> bytes:
    img = qrcode.make(payload, image_factory=SvgImage)
    return img.to_string()


def render_qr_data_url(payload: str) -> str:
    """Render a pairing QR payload as an embeddable `data:` URL (SVG)."""

    return DATA_URL_PREFIX + base64.b64encode(render_qr_svg(payload)).decode("ascii")
