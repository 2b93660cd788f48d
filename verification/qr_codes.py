"""
QR Code Generation for Product Verification

Renders the printed QR image for a Code Record. The QR encodes the public
verification URL for the record's QR code id.
"""

import base64
import io
from pathlib import Path
from typing import Optional, Tuple

import qrcode


def verification_url(qr_code_id: str, base_url: str) -> str:
    """
    Build the public verification URL for a QR code id.

    Example:
        >>> verification_url("QR-EMB-7KQ2XR9DHM", "https://verify.emboditrust.com/")
        'https://verify.emboditrust.com/verify/QR-EMB-7KQ2XR9DHM'
    """
    return f"{base_url.rstrip('/')}/verify/{qr_code_id}"


def _make_image(data: str):
    qr = qrcode.QRCode(
        version=None,  # Auto-size
        error_correction=qrcode.constants.ERROR_CORRECT_H,  # survives scuffed packaging
        box_size=10,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white")


def generate_qr_code_bytes(qr_code_id: str, base_url: str) -> bytes:
    """
    Generate the QR image for a code as PNG bytes.

    Args:
        qr_code_id: QR code identifier of the Code Record
        base_url: Public base URL of the verification site

    Returns:
        PNG image bytes
    """
    img = _make_image(verification_url(qr_code_id, base_url))

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_qr_code_data_url(
    qr_code_id: str,
    base_url: str,
    output_file: Optional[Path] = None,
) -> Tuple[str, Optional[Path]]:
    """
    Generate the QR image as a base64 data URL, optionally saving a PNG.

    Returns:
        Tuple of (data_url, saved_file_path)
    """
    png = generate_qr_code_bytes(qr_code_id, base_url)
    data_url = "data:image/png;base64," + base64.b64encode(png).decode("utf-8")

    saved_path = None
    if output_file:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_bytes(png)
        saved_path = output_file

    return data_url, saved_path
