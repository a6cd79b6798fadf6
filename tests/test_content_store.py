import json

import httpx
import pytest

from tessera.core.errors import UploadError
from tessera.services.content_store import PinataClient


@pytest.fixture
def client(settings, transport):
    return PinataClient(settings, transport=transport)


async def test_upload_blob_sends_authenticated_multipart(client, ipfs, png):
    upload = await client.upload_blob(
        png,
        "certificate-abc.png",
        {"certificate_id": "abc", "type": "image"},
        content_type="image/png",
    )

    request = ipfs.uploads[0]
    body = request.content
    assert request.url.path == "/v3/files"
    assert request.headers["Authorization"] == "Bearer test-jwt"
    assert b'name="network"\r\n\r\npublic' in body
    assert b'"certificate_id": "abc"' in body
    assert ipfs.files[upload.cid]["content"] == png
    assert ipfs.files[upload.cid]["content_type"] == "image/png"
    assert upload.size == len(png)


async def test_upload_json(client, ipfs):
    upload = await client.upload_json({"name": "Certificado - José"}, "certificate-metadata-abc.json")

    stored = ipfs.files[upload.cid]
    assert stored["content_type"] == "application/json"
    assert json.loads(stored["content"]) == {"name": "Certificado - José"}


def test_gateway_urls(settings):
    client = PinataClient(settings.model_copy(update={"PUBLIC_IPFS_GATEWAY": "https://ipfs.io"}))

    assert client.resolve_url("bafy1") == "https://gateway.test/ipfs/bafy1"
    assert client.public_url("bafy1") == "https://ipfs.io/ipfs/bafy1"


def test_public_url_falls_back_to_gateway(client):
    assert client.public_url("bafy1") == "https://gateway.test/ipfs/bafy1"


async def test_http_error_becomes_upload_error(client, ipfs):
    ipfs.upload_status = 401

    with pytest.raises(UploadError, match="HTTP 401"):
        await client.upload_blob(b"data", "file.bin")


async def test_transport_error_becomes_upload_error(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = PinataClient(settings, transport=httpx.MockTransport(handler))

    with pytest.raises(UploadError, match="Failed to connect"):
        await client.upload_blob(b"data", "file.bin")


@pytest.mark.parametrize("answer, cid", [
    ({"data": {"cid": "bafyv3", "name": "f", "size": 3}}, "bafyv3"),
    ({"IpfsHash": "QmLegacy", "PinSize": 3}, "QmLegacy"),
])
async def test_accepted_answer_shapes(settings, answer, cid):
    client = PinataClient(settings, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=answer)))

    upload = await client.upload_blob(b"abc", "f")

    assert upload.cid == cid


async def test_answer_without_cid(settings):
    client = PinataClient(settings, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"data": {}})))

    with pytest.raises(UploadError, match="did not return a CID"):
        await client.upload_blob(b"abc", "f")


async def test_missing_jwt_fails_without_request(settings, ipfs, transport):
    client = PinataClient(settings.model_copy(update={"PINATA_JWT": None}), transport=transport)

    with pytest.raises(UploadError, match="PINATA_JWT"):
        await client.upload_blob(b"abc", "f")

    assert ipfs.uploads == []


async def test_empty_content_is_refused(client, ipfs):
    with pytest.raises(UploadError):
        await client.upload_blob(b"", "empty.png")

    assert ipfs.uploads == []
