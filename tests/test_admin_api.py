"""
Admin API tests: authentication, batch generation, overrides and analytics.
"""

import csv
import io

from codes.scratch_codes import validate_code
from database.connection import get_db
from database.crud import get_code_by_code_id

ADMIN_HEADERS = {"X-API-Key": "test-admin-key"}

BATCH = {
    "brand_prefix": "EMB",
    "product_name": "Amoxicillin 500mg",
    "company_name": "Emboditrust Pharma",
    "manufacturer_id": "MFR-001",
    "quantity": 5,
}


def test_missing_api_key(client):
    response = client.get("/api/admin/brands")
    assert response.status_code == 401


def test_invalid_api_key(client):
    response = client.get("/api/admin/brands", headers={"X-API-Key": "wrong-key"})
    assert response.status_code == 401


def test_unconfigured_api_key(client, monkeypatch):
    from service.config import get_settings

    monkeypatch.setenv("ADMIN_API_KEY", "")
    get_settings.cache_clear()
    response = client.get("/api/admin/brands", headers=ADMIN_HEADERS)
    assert response.status_code == 500


def test_list_brands(client):
    response = client.get("/api/admin/brands", headers=ADMIN_HEADERS)
    assert response.status_code == 200
    prefixes = {brand["prefix"] for brand in response.json()["brands"]}
    assert {"EMB", "GSK", "AZN"} <= prefixes


def test_generate_batch_csv(client):
    response = client.post("/api/admin/batches", json=BATCH, headers=ADMIN_HEADERS)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    batch_id = response.headers["x-batch-id"]
    assert batch_id.startswith("BATCH-EMB-")

    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert len(rows) == 5
    assert all(validate_code(row["scratch_code"]) for row in rows)
    assert all(row["verification_url"] == f"https://verify.example.test/verify/{row['qr_code_id']}" for row in rows)

    first = client.post("/api/verify", json={"scratch_code": rows[0]["scratch_code"]})
    assert first.json()["result"] == "valid"


def test_generate_batch_json_with_qr_images(client):
    payload = dict(BATCH, quantity=2, format="json", include_qr_images=True)
    response = client.post("/api/admin/batches", json=payload, headers=ADMIN_HEADERS)
    data = response.json()
    assert len(data["codes"]) == 2
    assert data["codes"][0]["qr_image"].startswith("data:image/png;base64,")


def test_generate_batch_rejects_unknown_prefix(client):
    response = client.post("/api/admin/batches", json=dict(BATCH, brand_prefix="QQQ"), headers=ADMIN_HEADERS)
    assert response.status_code == 400


def test_generate_batch_quantity_limits(client):
    assert client.post("/api/admin/batches", json=dict(BATCH, quantity=0), headers=ADMIN_HEADERS).status_code == 422
    assert client.post("/api/admin/batches", json=dict(BATCH, quantity=10_001), headers=ADMIN_HEADERS).status_code == 422


def test_duplicate_batch_number_gets_suffix(client):
    payload = dict(BATCH, quantity=1, batch_number="AMX-2026-001")
    first = client.post("/api/admin/batches", json=payload, headers=ADMIN_HEADERS)
    second = client.post("/api/admin/batches", json=payload, headers=ADMIN_HEADERS)

    assert first.headers["x-batch-id"] == "AMX-2026-001"
    assert second.headers["x-batch-id"].startswith("AMX-2026-001-")


def test_batch_summary(client, make_batch):
    batch = make_batch(quantity=3)
    client.post("/api/verify", json={"scratch_code": batch.codes[0].scratch_code})

    response = client.get(f"/api/admin/batches/{batch.batch_id}", headers=ADMIN_HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["quantity"] == 3
    assert data["brand"] == "Emboditrust"
    assert data["status_counts"]["verified"] == 1
    assert data["status_counts"]["active"] == 2


def test_batch_summary_unknown(client):
    assert client.get("/api/admin/batches/BATCH-NOPE", headers=ADMIN_HEADERS).status_code == 404


def test_status_override(client, session_factory, make_batch):
    code = make_batch(quantity=1).codes[0]

    response = client.patch(
        f"/api/admin/codes/{code.qr_code_id}/status",
        json={"status": "revoked", "reason": "recalled batch"},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "revoked"

    verify = client.post("/api/verify", json={"scratch_code": code.scratch_code})
    assert verify.json()["result"] == "invalid"
    assert verify.json()["reason"] == "revoked"


def test_status_override_refuses_active_and_verified(client, make_batch):
    code = make_batch(quantity=1).codes[0]
    for status in ("active", "verified", "bogus"):
        response = client.patch(
            f"/api/admin/codes/{code.qr_code_id}/status",
            json={"status": status},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 400


def test_status_override_unknown_code(client):
    response = client.patch(
        "/api/admin/codes/QR-EMB-2222222222/status",
        json={"status": "expired"},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 404


def test_status_override_keeps_counts(client, session_factory, make_batch):
    code = make_batch(quantity=1).codes[0]
    client.post("/api/verify", json={"scratch_code": code.scratch_code})
    client.patch(
        f"/api/admin/codes/{code.qr_code_id}/status",
        json={"status": "suspected_counterfeit"},
        headers=ADMIN_HEADERS,
    )

    with get_db(session_factory) as db:
        record = get_code_by_code_id(db, code.qr_code_id)
        assert record.verification_count == 1
        assert record.first_verified_at is not None


def test_attempts_and_stats(client, make_batch):
    code = make_batch(quantity=1).codes[0]
    client.post("/api/verify", json={"scratch_code": code.scratch_code})
    client.post("/api/verify", json={"scratch_code": code.scratch_code})
    client.post("/api/verify", json={"scratch_code": "EMB2222226ZZ"})

    response = client.get("/api/admin/attempts", headers=ADMIN_HEADERS)
    data = response.json()
    assert len(data["attempts"]) == 3
    assert data["stats"]["total_attempts"] == 3
    assert data["stats"]["valid"] == 1
    assert data["stats"]["already_used"] == 1

    filtered = client.get("/api/admin/attempts", params={"result": "already_used"}, headers=ADMIN_HEADERS)
    assert len(filtered.json()["attempts"]) == 1


def test_status_summary(client, make_batch):
    make_batch(quantity=4)
    response = client.get("/api/admin/codes/status-summary", headers=ADMIN_HEADERS)
    data = response.json()
    assert data["total"] == 4
    assert data["status_counts"]["active"] == 4
