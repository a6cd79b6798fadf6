import pytest

from tessera.core.config import Settings, ensure_http_url


@pytest.mark.parametrize("raw, expected", [
    ("gateway.pinata.cloud", "https://gateway.pinata.cloud"),
    ("https://gateway.pinata.cloud/", "https://gateway.pinata.cloud"),
    ("http://localhost:3000//", "http://localhost:3000"),
    ("  HTTPS://Example.com  ", "HTTPS://Example.com"),
    ("", ""),
    (None, ""),
])
def test_ensure_http_url(raw, expected):
    assert ensure_http_url(raw) == expected


def test_settings_normalize_urls():
    settings = Settings(
        _env_file=None,
        PINATA_GATEWAY_URL="my.gateway.test/",
        FRONTEND_URL="app.tessera.test",
        PUBLIC_IPFS_GATEWAY="  ",
    )

    assert settings.gateway_url == "https://my.gateway.test"
    assert settings.frontend_url == "https://app.tessera.test"
    assert settings.public_gateway_url == "https://my.gateway.test"


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("LEDGER_TIMEOUT", "30")
    monkeypatch.setenv("DEFAULT_CREDITS", "4")

    settings = Settings(_env_file=None)

    assert settings.LEDGER_TIMEOUT == 30.0
    assert settings.DEFAULT_CREDITS == 4


def test_missing_frontend_is_empty():
    assert Settings(_env_file=None, FRONTEND_URL=None).frontend_url == ""
