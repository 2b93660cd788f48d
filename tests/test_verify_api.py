"""
Public verification API tests.
"""

from fastapi import BackgroundTasks
from sqlalchemy.exc import OperationalError

from database.connection import get_db
from database.crud import get_code_by_code_id, list_attempts
from service.deps import get_audit_log, get_verifier
from verification.audit import AuditLog


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "operational"


def test_health(client):
    response = client.get("/api/verify/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_verify_scratch_code_first_then_repeat(client, make_batch):
    code = make_batch(quantity=1).codes[0]

    first = client.post("/api/verify", json={"scratch_code": code.scratch_code})
    assert first.status_code == 200
    data = first.json()
    assert data["result"] == "valid"
    assert data["is_first_verification"] is True
    assert data["verification_count"] == 1
    assert data["product"]["product_name"] == "Amoxicillin 500mg"

    second = client.post("/api/verify", json={"scratch_code": code.scratch_code.lower()})
    data = second.json()
    assert data["result"] == "already_used"
    assert data["verification_count"] == 2
    assert data["first_verified_at"] == first.json()["first_verified_at"]


def test_verify_invalid_code(client):
    response = client.post("/api/verify", json={"scratch_code": "EMB-222-222-6Z"})
    assert response.status_code == 200
    assert response.json()["result"] == "invalid"
    assert response.json()["reason"] == "checksum_mismatch"


def test_verify_rejects_malformed_body(client):
    assert client.post("/api/verify", json={}).status_code == 422
    assert client.post("/api/verify", json={"scratch_code": ""}).status_code == 422


def test_web_attempt_records_client_details(client, session_factory, make_batch):
    code = make_batch(quantity=1).codes[0]
    client.post(
        "/api/verify",
        json={"scratch_code": code.scratch_code},
        headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "pytest-browser"},
    )

    with get_db(session_factory) as db:
        attempt = list_attempts(db)[0]
        assert attempt.channel == "web"
        assert attempt.ip_address == "203.0.113.9"
        assert attempt.user_agent == "pytest-browser"


def test_oversized_forwarded_header_is_not_stored(client, session_factory, make_batch):
    code = make_batch(quantity=1).codes[0]
    response = client.post(
        "/api/verify",
        json={"scratch_code": code.scratch_code},
        headers={"X-Forwarded-For": "x" * 500 + ", 10.0.0.1"},
    )
    assert response.json()["result"] == "valid"

    with get_db(session_factory) as db:
        attempt = list_attempts(db)[0]
        assert attempt.result == "valid"
        assert attempt.ip_address is None


def test_geolocated_attempt_is_written_after_response(client, session_factory, make_batch):
    class StubGeoLocator:
        def locate(self, ip_address):
            return {"country_code": "NG", "city": "Lagos"}

    def audit_log_with_lookup(background_tasks: BackgroundTasks):
        return AuditLog(session_factory, geolocator=StubGeoLocator(), defer=background_tasks.add_task)

    client.app.dependency_overrides[get_audit_log] = audit_log_with_lookup
    code = make_batch(quantity=1).codes[0]

    response = client.post(
        "/api/verify",
        json={"scratch_code": code.scratch_code},
        headers={"X-Forwarded-For": "102.89.0.1"},
    )
    assert response.json()["result"] == "valid"

    with get_db(session_factory) as db:
        attempt = list_attempts(db)[0]
        assert attempt.ip_address == "102.89.0.1"
        assert attempt.location["city"] == "Lagos"


def test_qr_info(client, make_batch):
    batch = make_batch(quantity=1)
    qr_code_id = batch.codes[0].qr_code_id

    response = client.get(f"/api/qr/{qr_code_id}/info")
    assert response.status_code == 200
    data = response.json()
    assert data["code_id"] == qr_code_id
    assert data["batch_id"] == batch.batch_id
    assert data["previously_verified"] is False
    assert "code_hash" not in data


def test_qr_info_unknown(client):
    assert client.get("/api/qr/QR-EMB-2222222222/info").status_code == 404


def test_qr_info_does_not_count(client, session_factory, make_batch):
    qr_code_id = make_batch(quantity=1).codes[0].qr_code_id
    client.get(f"/api/qr/{qr_code_id}/info")

    with get_db(session_factory) as db:
        assert get_code_by_code_id(db, qr_code_id).verification_count == 0


def test_verify_qr_with_scratch_code(client, make_batch):
    code = make_batch(quantity=1).codes[0]

    response = client.post(f"/api/verify/qr/{code.qr_code_id}", json={"scratch_code": code.scratch_code})
    assert response.json()["result"] == "valid"

    response = client.post(f"/api/verify/qr/{code.qr_code_id}")
    assert response.json()["result"] == "already_used"


def test_verify_qr_mismatch(client, make_batch):
    first, second = make_batch(quantity=2).codes
    response = client.post(f"/api/verify/qr/{first.qr_code_id}", json={"scratch_code": second.scratch_code})
    assert response.json()["result"] == "invalid"
    assert response.json()["reason"] == "scratch_mismatch"


def test_storage_failure_maps_to_503(client):
    class DownVerifier:
        def verify_scratch_code(self, raw_code, context=None):
            from verification.errors import StorageUnavailable
            raise StorageUnavailable("down") from OperationalError("UPDATE", {}, Exception("locked"))

    client.app.dependency_overrides[get_verifier] = lambda: DownVerifier()
    response = client.post("/api/verify", json={"scratch_code": "EMB2222226ZK"})
    assert response.status_code == 503
    assert "try again" in response.json()["detail"].lower()
    assert "locked" not in response.text


def test_report_fake_product_flags_code(client, session_factory, make_batch, notifier, monkeypatch):
    from service.config import get_settings

    monkeypatch.setenv("ADMIN_ALERT_NUMBER", "+2348000000000")
    get_settings.cache_clear()
    code = make_batch(quantity=1).codes[0]

    response = client.post("/api/reports/fake-product", json={
        "product_name": "Amoxicillin 500mg",
        "purchase_location": "Balogun Market, Lagos",
        "qr_code_id": code.qr_code_id,
        "reporter_phone": "+2348031234567",
    })
    assert response.status_code == 201
    assert response.json()["code_flagged"] is True
    assert notifier.alerts[0][0] == "+2348000000000"

    verify = client.post("/api/verify", json={"scratch_code": code.scratch_code})
    assert verify.json()["result"] == "suspected_counterfeit"


def test_report_requires_product_and_location(client):
    response = client.post("/api/reports/fake-product", json={"product_name": "X", "purchase_location": "   "})
    assert response.status_code == 422
