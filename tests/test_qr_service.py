from io import BytesIO

import pytest
from PIL import Image
from pydantic import ValidationError

from tessera.core.errors import EncodingError
from tessera.services.qr_service import QRCodeOptions, QRCodeService

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_encode_returns_png_of_requested_width():
    data = QRCodeService().encode("https://app.tessera.test/verify/abc")

    assert data.startswith(PNG_SIGNATURE)
    image = Image.open(BytesIO(data))
    assert image.size == (512, 512)


def test_encode_is_deterministic():
    service = QRCodeService()

    assert service.encode("https://app.tessera.test/verify/abc") == service.encode("https://app.tessera.test/verify/abc")


def test_different_payloads_differ():
    service = QRCodeService()

    assert service.encode("https://a.test/verify/1") != service.encode("https://a.test/verify/2")


def test_custom_options():
    options = QRCodeOptions(width=256, margin=4, error_correction="H", dark_color="#112233")

    image = Image.open(BytesIO(QRCodeService().encode("payload", options))).convert("RGB")

    assert image.size == (256, 256)
    colors = {color for _, color in image.getcolors(maxcolors=256)}
    assert (0x11, 0x22, 0x33) in colors
    assert (255, 255, 255) in colors


@pytest.mark.parametrize("payload", ["", "   "])
def test_empty_payload(payload):
    with pytest.raises(EncodingError):
        QRCodeService().encode(payload)


def test_payload_too_large():
    with pytest.raises(EncodingError):
        QRCodeService().encode("x" * 8000, QRCodeOptions(error_correction="H"))


def test_options_are_validated():
    with pytest.raises(ValidationError):
        QRCodeOptions(error_correction="X")
    with pytest.raises(ValidationError):
        QRCodeOptions(width=10)
