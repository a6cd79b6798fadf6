import httpx
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from tessera.core.dependencies import get_certificate_pipeline, get_settings_dependency
from tessera.db.mongo import get_database_dependency
from tessera.main import app

from .conftest import AVALANCHE_TX, INSTITUTION_ID

FORM = {
    "recipient_name": "Jane Doe",
    "course_name": "Blockchain 101",
    "institute_id": INSTITUTION_ID,
    "issued_at": "2025-01-15T00:00:00Z",
}


class PingableDatabase:
    def __init__(self, error=None):
        self.error = error

    async def command(self, name):
        if self.error:
            raise self.error
        return {"ok": 1}


@pytest.fixture
def overrides(pipeline, settings):
    app.dependency_overrides[get_certificate_pipeline] = lambda: pipeline
    app.dependency_overrides[get_settings_dependency] = lambda: settings
    app.dependency_overrides[get_database_dependency] = lambda: PingableDatabase()
    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest.fixture
async def client(overrides):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def image_file(png):
    return {"image": ("certificate.png", png, "image/png")}


async def test_create_complete_success(client, institution, png):
    response = await client.post("/api/v1/certificates/create-complete", data=FORM, files=image_file(png))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["certificate"]["id"] == body["certificate_id"]
    assert body["certificate"]["transaction_hash"] == AVALANCHE_TX
    assert body["qr_url"].startswith("https://gateway.test/ipfs/")
    assert body["progress"]["current_step"] == "Completed"


async def test_create_complete_keeps_image_content_type(client, institution, png, ipfs):
    response = await client.post(
        "/api/v1/certificates/create-complete",
        data=FORM,
        files={"image": ("certificate.jpg", png, "image/jpeg")},
    )

    assert response.status_code == 201
    image = ipfs.files[response.json()["certificate"]["image_hash"]]
    assert image["content_type"] == "image/jpeg"
    assert image["name"].endswith(".jpg")


async def test_create_complete_partial(client, institution, png, ledger):
    ledger.status_code = 500

    response = await client.post("/api/v1/certificates/create-complete", data=FORM, files=image_file(png))

    assert response.status_code == 206
    body = response.json()
    assert body["success"] is False
    assert body["progress"]["current_step"] == "Sending to Avalanche"
    assert body["current_status"]["progress"]["uploaded_to_content_store"] is True
    assert body["error_code"] == "LEDGER_ERROR"


async def test_create_complete_requires_image(client, institution, db):
    response = await client.post("/api/v1/certificates/create-complete", data=FORM)

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_INPUT_ERROR"
    assert await db.certificates.count_documents({}) == 0


@pytest.mark.parametrize("field", ["recipient_name", "course_name", "institute_id", "issued_at"])
async def test_create_complete_requires_fields(client, institution, png, field):
    form = {k: v for k, v in FORM.items() if k != field}

    response = await client.post("/api/v1/certificates/create-complete", data=form, files=image_file(png))

    assert response.status_code == 400
    assert field in response.json()["message"]


async def test_create_complete_invalid_date(client, institution, png):
    response = await client.post(
        "/api/v1/certificates/create-complete",
        data={**FORM, "issued_at": "yesterday"},
        files=image_file(png),
    )

    assert response.status_code == 400
    assert "issued_at" in response.json()["message"]


async def test_create_complete_unknown_institution(client, png):
    response = await client.post("/api/v1/certificates/create-complete", data=FORM, files=image_file(png))

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "PERSISTENCE_ERROR",
        "message": f"Institution {INSTITUTION_ID} does not exist",
    }


async def test_step_by_step_issuance(client, institution, png, ledger):
    created = await client.post("/api/v1/certificates", json=FORM)
    assert created.status_code == 201
    certificate_id = created.json()["id"]

    uploaded = await client.post(f"/api/v1/certificates/{certificate_id}/upload", files=image_file(png))
    assert uploaded.status_code == 200
    assert uploaded.json()["metadata_url"].startswith("https://gateway.test/ipfs/")

    anchored = await client.post(f"/api/v1/certificates/{certificate_id}/anchor")
    assert anchored.status_code == 200
    assert anchored.json()["transaction_hash"] == AVALANCHE_TX

    again = await client.post(f"/api/v1/certificates/{certificate_id}/anchor")
    assert again.status_code == 400
    assert again.json()["error"] == "PRECONDITION_FAILED"
    assert ledger.calls == 1

    forced = await client.post(f"/api/v1/certificates/{certificate_id}/anchor", params={"force": "true"})
    assert forced.status_code == 200
    assert ledger.calls == 2

    qr = await client.post(f"/api/v1/certificates/{certificate_id}/qr")
    assert qr.status_code == 200
    assert qr.json()["qr_url"].startswith("https://gateway.test/ipfs/")

    status = await client.get(f"/api/v1/certificates/{certificate_id}/status")
    assert status.json()["current_step"] == "Completed"

    validation = await client.get(f"/api/v1/certificates/{certificate_id}/validate")
    assert validation.json()["valid"] is True

    record = await client.get(f"/api/v1/certificates/{certificate_id}")
    assert record.json()["qr_url"] == qr.json()["qr_url"]


async def test_stage_out_of_order(client, institution):
    created = await client.post("/api/v1/certificates", json=FORM)

    response = await client.post(f"/api/v1/certificates/{created.json()['id']}/qr")

    assert response.status_code == 400
    assert response.json()["error"] == "PRECONDITION_FAILED"


async def test_create_basic_validation_error(client):
    response = await client.post("/api/v1/certificates", json={"recipient_name": "Jane Doe"})

    assert response.status_code == 422
    assert response.json()["error"] == "Validation Error"


async def test_unknown_certificate(client):
    response = await client.get("/api/v1/certificates/missing")

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


async def test_validate_unknown_certificate(client):
    response = await client.get("/api/v1/certificates/missing/validate")

    assert response.status_code == 200
    assert response.json()["valid"] is False


async def test_malformed_certificate(client, db):
    await db.certificates.insert_one({"_id": "broken", "recipient_name": "Jane Doe", "institute_id": INSTITUTION_ID})

    validation = await client.get("/api/v1/certificates/broken/validate")
    status = await client.get("/api/v1/certificates/broken/status")

    assert validation.status_code == 200
    assert validation.json()["valid"] is False
    assert status.status_code == 500
    assert status.json()["error"] == "PERSISTENCE_ERROR"


async def test_certificates_health(client):
    response = await client.get("/api/v1/certificates/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_request_headers(client):
    response = await client.get("/api/v1/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "alive"
    assert len(response.headers["X-Request-ID"]) == 8
    assert "X-Process-Time" in response.headers
    assert response.headers["X-Content-Type-Options"] == "nosniff"


async def test_health_with_database(client):
    response = await client.get("/api/v1/health")

    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "connected"


async def test_health_without_database(client, overrides):
    overrides[get_database_dependency] = lambda: PingableDatabase(ServerSelectionTimeoutError("no servers"))

    health = await client.get("/api/v1/health")
    ready = await client.get("/api/v1/health/ready")

    assert health.json()["database"] == "disconnected"
    assert ready.json()["status"] == "not_ready"


async def test_root(client):
    response = await client.get("/")

    assert response.json()["health"] == "/api/v1/health"
