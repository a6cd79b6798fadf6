"""
QR code generation service for certificate verification.
Encodes a verification URL into a PNG image; no network access.
"""

from io import BytesIO
from typing import Literal, Optional

import qrcode
from PIL import Image
from pydantic import BaseModel, Field

from ..core.errors import EncodingError
from ..utils.logger import get_logger

logger = get_logger("qr_service")

_ERROR_CORRECTION = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}


class QRCodeOptions(BaseModel):
    """Rendering options for a QR code image."""

    width: int = Field(default=512, ge=64, le=4096, description="Output image width/height in pixels")
    margin: int = Field(default=2, ge=0, le=20, description="Quiet zone in modules")
    error_correction: Literal["L", "M", "Q", "H"] = "M"
    dark_color: str = "#000000"
    light_color: str = "#FFFFFF"


class QRCodeService:
    """Service for rendering verification QR codes."""

    def __init__(self, default_options: Optional[QRCodeOptions] = None):
        self.default_options = default_options or QRCodeOptions()

    def encode(self, payload: str, options: Optional[QRCodeOptions] = None) -> bytes:
        """
        Render a payload as a square PNG QR code.

        The output depends only on the payload and the options.

        Args:
            payload: Text to encode, usually a verification URL
            options: Rendering options, defaults to the service defaults

        Returns:
            PNG image bytes

        Raises:
            EncodingError: If the payload is empty or cannot be rendered
        """
        if not payload or not payload.strip():
            raise EncodingError("QR payload is empty")

        opts = options or self.default_options

        try:
            qr = qrcode.QRCode(
                version=None,
                error_correction=_ERROR_CORRECTION[opts.error_correction],
                box_size=10,
                border=opts.margin,
            )
            qr.add_data(payload)
            qr.make(fit=True)

            img = qr.make_image(fill_color=opts.dark_color, back_color=opts.light_color)
            img = img.resize((opts.width, opts.width), Image.NEAREST)

            buffer = BytesIO()
            img.save(buffer, format="PNG")
        except (ValueError, qrcode.exceptions.DataOverflowError) as e:
            logger.error(f"Error generating QR code: {e}")
            raise EncodingError(f"Could not encode QR code: {e}") from e

        logger.info(f"Generated QR code ({opts.width}px) for payload of {len(payload)} chars")
        return buffer.getvalue()
