"""
Shared fixtures: a throwaway SQLite file database per test and a TestClient
wired to it through dependency overrides.
"""

import os

# Environment must be in place before service.config is first imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["USSD_API_KEY"] = "test-ussd-key"
os.environ["BASE_URL"] = "https://verify.example.test"
os.environ["SMS_VALIDATE_SIGNATURE"] = "false"
os.environ["GEOLOCATION_ENABLED"] = "false"
for _name in ("CODE_HASH_PEPPER", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER",
              "ADMIN_ALERT_NUMBER", "EXTRA_BRAND_PREFIXES"):
    os.environ.pop(_name, None)

import pytest
from fastapi.testclient import TestClient

from admin.generation import BatchRequest, generate_and_store_batch
from database.connection import build_engine, build_session_factory, get_db, init_database
from service.config import get_settings
from verification.audit import AuditLog
from verification.verifier import CodeVerifier


class RecordingNotifier:
    """Stands in for SMSNotifier; remembers what would have been sent."""

    def __init__(self):
        self.alerts = []
        self.receipts = []

    def is_available(self):
        return True

    def send_counterfeit_alert(self, to_number, report):
        self.alerts.append((to_number, report))
        return "SM-test"

    def send_verification_receipt(self, to_number, outcome):
        self.receipts.append((to_number, outcome))
        return "SM-test"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'emboditrust-test.db'}", timeout_seconds=15)
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def verifier(session_factory):
    return CodeVerifier(session_factory, audit_log=AuditLog(session_factory))


@pytest.fixture
def make_batch(session_factory):
    """Store a batch and return the GeneratedBatch with its raw scratch codes."""

    def _make_batch(quantity=3, brand_prefix="EMB", product_name="Amoxicillin 500mg", **kwargs):
        request = BatchRequest(
            brand_prefix=brand_prefix,
            product_name=product_name,
            company_name="Emboditrust Pharma",
            manufacturer_id="MFR-001",
            quantity=quantity,
            **kwargs,
        )
        with get_db(session_factory) as db:
            return generate_and_store_batch(db, request, base_url="https://verify.example.test")

    return _make_batch


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(session_factory, notifier):
    from service.api import app
    from service.deps import get_notifier, get_session_factory

    get_settings.cache_clear()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
    get_settings.cache_clear()
