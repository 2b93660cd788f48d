"""
Batch generation flow tests.
"""

import csv
import io

import pytest

from admin.generation import BatchRequest, GeneratedCode, codes_to_csv, generate_and_store_batch
from codes.identifiers import hash_code
from database.connection import get_db
from database.crud import get_batch, get_code_by_hash
from database.models import CodeStatus
from verification.errors import InvalidBrandPrefix


def request(**overrides):
    data = dict(
        brand_prefix="GSK",
        product_name="Augmentin 625mg",
        company_name="GlaxoSmithKline",
        manufacturer_id="MFR-GSK",
        quantity=20,
    )
    data.update(overrides)
    return BatchRequest(**data)


def test_stores_hashes_only(session_factory):
    with get_db(session_factory) as db:
        generated = generate_and_store_batch(db, request(), base_url="https://verify.example.test")

    assert len(generated.codes) == 20
    assert len({code.scratch_code for code in generated.codes}) == 20
    assert len({code.qr_code_id for code in generated.codes}) == 20

    with get_db(session_factory) as db:
        for code in generated.codes:
            record = get_code_by_hash(db, hash_code(code.scratch_code))
            assert record.code_id == code.qr_code_id
            assert record.status == CodeStatus.ACTIVE.value
            assert record.verification_count == 0
            assert record.batch_id == generated.batch_id
        assert get_batch(db, generated.batch_id).quantity == 20


def test_pepper_is_applied(session_factory):
    with get_db(session_factory) as db:
        generated = generate_and_store_batch(db, request(quantity=1), pepper="pepper")

    scratch_code = generated.codes[0].scratch_code
    with get_db(session_factory) as db:
        assert get_code_by_hash(db, hash_code(scratch_code)) is None
        assert get_code_by_hash(db, hash_code(scratch_code, "pepper")) is not None


def test_invalid_prefix_rejected(session_factory):
    with pytest.raises(InvalidBrandPrefix):
        with get_db(session_factory) as db:
            generate_and_store_batch(db, request(brand_prefix="QQQ"))


@pytest.mark.parametrize("quantity", [0, 10_001])
def test_quantity_bounds(session_factory, quantity):
    with pytest.raises(ValueError):
        with get_db(session_factory) as db:
            generate_and_store_batch(db, request(quantity=quantity))


def test_large_batch_spans_insert_chunks(session_factory):
    with get_db(session_factory) as db:
        generated = generate_and_store_batch(db, request(quantity=1200))

    with get_db(session_factory) as db:
        assert len(get_batch(db, generated.batch_id).codes) == 1200


def test_codes_to_csv():
    text = codes_to_csv([
        GeneratedCode("QR-EMB-2222222222", "EMB2222226ZK", "https://verify.example.test/verify/QR-EMB-2222222222"),
    ])
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == ["qr_code_id", "scratch_code", "verification_url"]
    assert rows[1] == ["QR-EMB-2222222222", "EMB2222226ZK", "https://verify.example.test/verify/QR-EMB-2222222222"]
