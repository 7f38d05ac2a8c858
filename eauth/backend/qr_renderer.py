"""Render otpauth:// URIs as QR code images for authenticator apps."""

import base64
import io

import qrcode


def render_png(uri: str, box_size: int = 10, border: int = 4) -> bytes:
    """Encode ``uri`` as a QR code and return the PNG bytes."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_data_url(uri: str) -> str:
    """PNG QR code as a ``data:`` URL, ready for an <img src=...>."""
    encoded = base64.b64encode(render_png(uri)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
