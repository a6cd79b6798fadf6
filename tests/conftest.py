"""
Shared fixtures: an in-memory MongoDB, fake Pinata/gateway/ledger services
behind one ``httpx.MockTransport`` and a fully wired pipeline.
"""

import hashlib
import json
import re
import zlib
from io import BytesIO

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient
from PIL import Image

from tessera.core.config import Settings
from tessera.db.repositories import CertificateRepository, DirectoryRepository
from tessera.services.certificate_pipeline import CertificatePipeline
from tessera.services.content_store import PinataClient
from tessera.services.content_validator import ContentValidator
from tessera.services.ledger_client import LedgerClient
from tessera.services.qr_service import QRCodeService

UPLOAD_HOST = "uploads.test"
GATEWAY_HOST = "gateway.test"
LEDGER_HOST = "ledger.test"

INSTITUTION_ID = "a61fbe42-db63-4b1d-853f-bebb56fae790"

AVALANCHE_TX = "0xava0000000000000000000000000000000000000000000000000000000000a1"
ARBITRUM_TX = "0xarb0000000000000000000000000000000000000000000000000000000000b2"


def nested_mint_body(avalanche=AVALANCHE_TX, arbitrum=ARBITRUM_TX) -> dict:
    data = {}
    if avalanche:
        data["avalanche"] = {"success": True, "data": {"transaction_hash": avalanche, "block_number": 42}}
    if arbitrum:
        data["arbitrum"] = {"success": True, "data": {"transaction_hash": arbitrum, "block_number": 7}}
    return {"success": True, "data": data}


def make_png(size: int = 10 * 1024) -> bytes:
    """A valid PNG padded to roughly ``size`` bytes with a text chunk."""
    buffer = BytesIO()
    Image.new("RGB", (64, 64), "white").save(buffer, format="PNG")
    png = buffer.getvalue()
    padding = max(size - len(png), 0)
    # append an ancillary chunk before IEND so the file stays valid
    chunk_data = b"Comment\x00" + b"x" * padding
    chunk = (
        len(chunk_data).to_bytes(4, "big")
        + b"tEXt"
        + chunk_data
        + zlib.crc32(b"tEXt" + chunk_data).to_bytes(4, "big")
    )
    return png[:-12] + chunk + png[-12:]


class FakeIpfs:
    """Pinata upload API and IPFS gateway backed by a dict."""

    def __init__(self):
        self.files = {}
        self.uploads = []
        self.upload_status = 200
        self.missing = set()
        self.content_type_overrides = {}

    def handle_upload(self, request: httpx.Request) -> httpx.Response:
        body = request.content
        self.uploads.append(request)

        if self.upload_status != 200:
            return httpx.Response(self.upload_status, json={"error": "upload rejected"})

        filename = re.search(rb'filename="([^"]+)"', body).group(1).decode()
        content_type = re.search(
            rb'filename="[^"]+"\r\nContent-Type: ([^\r]+)\r\n\r\n', body
        ).group(1).decode()
        start = body.index(b"\r\n\r\n", body.index(b'filename="')) + 4
        end = body.rindex(b"\r\n--")
        content = body[start:end]

        cid = "bafy" + hashlib.sha256(content).hexdigest()[:40]
        self.files[cid] = {"name": filename, "content_type": content_type, "content": content}

        return httpx.Response(200, json={"data": {"id": cid[:8], "name": filename, "cid": cid, "size": len(content)}})

    def handle_gateway(self, request: httpx.Request) -> httpx.Response:
        cid = request.url.path.rsplit("/", 1)[-1]
        if cid in self.missing or cid not in self.files:
            return httpx.Response(404, text="not found")
        entry = self.files[cid]
        content_type = self.content_type_overrides.get(cid, entry["content_type"])
        return httpx.Response(200, content=entry["content"], headers={"content-type": content_type})

    def put_json(self, document: dict) -> str:
        content = json.dumps(document).encode()
        cid = "bafy" + hashlib.sha256(content).hexdigest()[:40]
        self.files[cid] = {"name": "manual.json", "content_type": "application/json", "content": content}
        return cid

    def uploaded(self, prefix: str) -> list:
        return [f for f in self.files.values() if f["name"].startswith(prefix)]

    def metadata_documents(self) -> list:
        return [json.loads(f["content"]) for f in self.uploaded("certificate-metadata-")]


class FakeLedger:
    """Minting service answering with a configurable reply."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.body = nested_mint_body()

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status_code, json=self.body)
        return httpx.Response(self.status_code, text=self.body or "")


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        PINATA_JWT="test-jwt",
        PINATA_UPLOAD_URL=f"https://{UPLOAD_HOST}/v3",
        PINATA_GATEWAY_URL=f"https://{GATEWAY_HOST}",
        PUBLIC_IPFS_GATEWAY=None,
        FRONTEND_URL="https://app.tessera.test/",
        LEDGER_API_URL=f"https://{LEDGER_HOST}/api/certificates/mint",
        LEDGER_API_KEY="ledger-key",
    )


@pytest.fixture
def ipfs():
    return FakeIpfs()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def transport(ipfs, ledger):
    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == UPLOAD_HOST:
            return ipfs.handle_upload(request)
        if host == GATEWAY_HOST:
            return ipfs.handle_gateway(request)
        if host == LEDGER_HOST:
            return ledger.handle(request)
        return httpx.Response(404, text=f"unknown host {host}")

    return httpx.MockTransport(handler)


@pytest.fixture
def db():
    return AsyncMongoMockClient()["tessera_test"]


@pytest.fixture
async def institution(db):
    await db.institutions.insert_one({
        "_id": INSTITUTION_ID,
        "name": "Blokis Academy",
        "legal_id": "RUC-20123456789",
        "website": "https://blokis.com/",
        "address": "Lima, Peru",
        "email": "contact@blokis.com",
    })
    return INSTITUTION_ID


@pytest.fixture
def certificates(db):
    return CertificateRepository(db)


@pytest.fixture
def pipeline(db, certificates, settings, transport):
    return CertificatePipeline(
        certificates=certificates,
        directory=DirectoryRepository(db),
        content_store=PinataClient(settings, transport=transport),
        ledger=LedgerClient(settings, transport=transport),
        qr_service=QRCodeService(),
        validator=ContentValidator(settings, transport=transport),
        settings=settings,
    )


@pytest.fixture
def png():
    return make_png()
