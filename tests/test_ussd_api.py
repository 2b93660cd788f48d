"""
USSD webhook tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from channels.replay import normalize_phone_number
from channels.ussd_api import latest_input
from codes.identifiers import hash_code
from database.connection import get_db
from database.crud import create_attempt, get_code_by_code_id, list_attempts
from service.deps import get_verifier
from verification.errors import StorageUnavailable

USSD_HEADERS = {"X-USSD-API-Key": "test-ussd-key"}


def ussd(client, text, phone="08031234567", headers=USSD_HEADERS):
    return client.post(
        "/api/ussd",
        data={
            "session_id": "ATUid_test",
            "phone_number": phone,
            "service_code": "*347*123#",
            "text": text,
            "network_code": "62130",
        },
        headers=headers,
    )


@pytest.mark.parametrize("raw, expected", [
    ("08031234567", "2348031234567"),
    ("0803 123 4567", "2348031234567"),
    ("+2348031234567", "2348031234567"),
    ("2348031234567", "2348031234567"),
])
def test_normalize_phone_number(raw, expected):
    assert normalize_phone_number(raw) == expected


def test_latest_input():
    assert latest_input("") == ""
    assert latest_input("EMB2222226ZK") == "EMB2222226ZK"
    assert latest_input("1*EMB2222226ZK") == "EMB2222226ZK"


def test_rejects_missing_api_key(client):
    response = ussd(client, "", headers={})
    assert response.status_code == 200
    assert response.text == "END Invalid access"


def test_rejects_wrong_api_key(client):
    response = ussd(client, "", headers={"X-USSD-API-Key": "wrong"})
    assert response.text == "END Invalid access"


def test_welcome_screen(client):
    response = ussd(client, "")
    assert response.text.startswith("CON ")
    assert "scratch code" in response.text


def test_help_option(client):
    response = ussd(client, "0")
    assert response.text.startswith("END ")
    assert "0800-EMBODI" in response.text


def test_wrong_length_reprompts_without_logging(client, session_factory):
    response = ussd(client, "EMB222")
    assert response.text.startswith("CON Invalid code length")

    with get_db(session_factory) as db:
        assert list_attempts(db) == []


def test_bad_characters_reprompt(client):
    response = ussd(client, "EMB2222220ZK")
    assert response.text.startswith("CON Invalid characters")


def test_punctuation_is_not_a_delimiter(client, session_factory):
    response = ussd(client, "EMB222222$ZK")
    assert response.text.startswith("CON Invalid characters")

    response = ussd(client, "EMB-222.222 6ZK")
    assert response.text.startswith("END")

    with get_db(session_factory) as db:
        assert [a.result for a in list_attempts(db)] == ["invalid"]


def test_verify_first_use(client, session_factory, make_batch):
    code = make_batch(quantity=1).codes[0]

    response = ussd(client, code.scratch_code)
    assert response.text.startswith("END AUTHENTIC PRODUCT")
    assert "Amoxicillin 500mg" in response.text

    with get_db(session_factory) as db:
        attempt = list_attempts(db)[0]
        assert attempt.channel == "ussd"
        assert attempt.phone_number == "2348031234567"
        assert attempt.result == "valid"


def test_receipt_sms_sent_when_enabled(client, make_batch, notifier, monkeypatch):
    from service.config import get_settings

    monkeypatch.setenv("USSD_SMS_RECEIPTS", "true")
    get_settings.cache_clear()
    code = make_batch(quantity=1).codes[0]

    response = ussd(client, code.scratch_code)
    assert response.text.startswith("END AUTHENTIC PRODUCT")

    assert len(notifier.receipts) == 1
    to_number, outcome = notifier.receipts[0]
    assert to_number == "+2348031234567"
    assert outcome.result.value == "valid"


def test_no_receipt_by_default(client, make_batch, notifier):
    ussd(client, make_batch(quantity=1).codes[0].scratch_code)
    assert notifier.receipts == []


def test_verify_uses_latest_segment(client, make_batch):
    code = make_batch(quantity=1).codes[0]
    response = ussd(client, f"EMB222*{code.scratch_code}")
    assert response.text.startswith("END AUTHENTIC PRODUCT")


def test_repeat_within_window_replays(client, session_factory, make_batch):
    code = make_batch(quantity=1).codes[0]

    ussd(client, code.scratch_code)
    response = ussd(client, code.scratch_code)
    assert response.text.startswith("END Recent verification found")
    assert "VALID" in response.text

    with get_db(session_factory) as db:
        assert get_code_by_code_id(db, code.qr_code_id).verification_count == 1


def test_other_phone_is_not_replayed(client, make_batch):
    code = make_batch(quantity=1).codes[0]

    ussd(client, code.scratch_code)
    response = ussd(client, code.scratch_code, phone="08099999999")
    assert response.text.startswith("END PREVIOUSLY VERIFIED")
    assert "Total verifications: 2" in response.text


def test_repeat_outside_window_verifies_again(client, session_factory, make_batch):
    code = make_batch(quantity=1).codes[0]
    with get_db(session_factory) as db:
        create_attempt(db, {
            "timestamp": datetime.now(timezone.utc) - timedelta(minutes=30),
            "code_hash": hash_code(code.scratch_code),
            "result": "valid",
            "channel": "ussd",
            "phone_number": "2348031234567",
        })

    response = ussd(client, code.scratch_code)
    assert response.text.startswith("END AUTHENTIC PRODUCT")


def test_unknown_code(client):
    response = ussd(client, "EMB2222226ZK")
    assert response.text.startswith("END PRODUCT NOT FOUND")


def test_storage_failure(client):
    class DownVerifier:
        def verify_scratch_code(self, raw_code, context=None):
            raise StorageUnavailable("down")

    client.app.dependency_overrides[get_verifier] = lambda: DownVerifier()
    response = ussd(client, "EMB2222226ZK")
    assert response.status_code == 200
    assert response.text.startswith("END System error")
    assert "try again later" in response.text
