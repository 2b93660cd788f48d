"""
Batch Generation

Creates a batch of Code Records for one product run and hands back the raw
scratch codes exactly once, for printing. Only hashes are stored; a lost
CSV cannot be regenerated, only replaced by a new batch.

Flow:
1. Validate the brand prefix (before any randomness is drawn)
2. Generate unique scratch codes, redrawing any whose hash is already stored
3. Pair each scratch code with a fresh QR code id
4. Insert the Batch row and Code Records (active, count 0) in chunks
5. Return the pairs with their verification URLs (and QR images on request)
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from codes.identifiers import generate_batch_id, generate_qr_code_id, hash_code
from codes.scratch_codes import check_brand_prefix, generate_batch, random_symbols
from database.crud import batch_exists, create_batch, existing_code_hashes, insert_codes
from verification.qr_codes import generate_qr_code_data_url, verification_url

logger = logging.getLogger(__name__)

MAX_BATCH_QUANTITY = 10_000
BATCH_SUFFIX_LENGTH = 4
CSV_HEADER = ("qr_code_id", "scratch_code", "verification_url")


@dataclass
class BatchRequest:
    """Parameters for one generation run."""

    brand_prefix: str
    product_name: str
    company_name: str
    manufacturer_id: str
    quantity: int
    batch_number: Optional[str] = None
    created_by: Optional[str] = None
    include_qr_images: bool = False


@dataclass
class GeneratedCode:
    qr_code_id: str
    scratch_code: str
    verification_url: str
    qr_image: Optional[str] = None  # PNG data URL


@dataclass
class GeneratedBatch:
    batch_id: str
    brand_prefix: str
    product_name: str
    quantity: int
    created_at: datetime
    codes: List[GeneratedCode] = field(default_factory=list)


def _unique_batch_id(db: Session, request: BatchRequest, now: datetime) -> str:
    if not request.batch_number:
        return generate_batch_id(request.brand_prefix, now)

    batch_id = request.batch_number.strip()
    if batch_exists(db, batch_id):
        suffixed = f"{batch_id}-{random_symbols(BATCH_SUFFIX_LENGTH)}"
        logger.info(f"Batch number {batch_id} already exists, using {suffixed}")
        batch_id = suffixed
    return batch_id


def _fresh_codes(db: Session, request: BatchRequest, pepper: Optional[str]) -> List[str]:
    """Generate codes whose hashes collide with nothing already stored."""
    codes = generate_batch(request.quantity, request.brand_prefix)

    while True:
        taken = existing_code_hashes(db, [hash_code(code, pepper) for code in codes])
        if not taken:
            return codes

        logger.warning(f"Redrawing {len(taken)} scratch codes that collide with stored codes")
        kept = [code for code in codes if hash_code(code, pepper) not in taken]
        seen = set(kept)
        while len(kept) < request.quantity:
            for code in generate_batch(request.quantity - len(kept), request.brand_prefix):
                if code not in seen:
                    seen.add(code)
                    kept.append(code)
        codes = kept


def generate_and_store_batch(
    session: Session,
    request: BatchRequest,
    base_url: str = "http://localhost:8000",
    pepper: Optional[str] = None,
    now: Optional[datetime] = None,
) -> GeneratedBatch:
    """
    Generate and persist a batch of Code Records.

    The session is flushed but not committed; the caller owns the
    transaction so a failed insert leaves no partial batch behind.

    Args:
        session: Open database session
        request: Generation parameters
        base_url: Public verification site used in URLs and QR images
        pepper: Optional CODE_HASH_PEPPER for hashing

    Returns:
        GeneratedBatch with the raw scratch codes (shown once)

    Raises:
        InvalidBrandPrefix: Prefix unknown or malformed
        ValueError: Quantity outside 1..MAX_BATCH_QUANTITY
    """
    check_brand_prefix(request.brand_prefix)
    if not 1 <= request.quantity <= MAX_BATCH_QUANTITY:
        raise ValueError(f"Quantity must be between 1 and {MAX_BATCH_QUANTITY}, got {request.quantity}")

    now = now or datetime.now(timezone.utc)
    batch_id = _unique_batch_id(session, request, now)
    codes = _fresh_codes(session, request, pepper)

    create_batch(session, {
        "batch_id": batch_id,
        "brand_prefix": request.brand_prefix,
        "product_name": request.product_name,
        "company_name": request.company_name,
        "manufacturer_id": request.manufacturer_id,
        "quantity": request.quantity,
        "created_by": request.created_by,
        "created_at": now,
    })

    generated = GeneratedBatch(
        batch_id=batch_id,
        brand_prefix=request.brand_prefix,
        product_name=request.product_name,
        quantity=request.quantity,
        created_at=now,
    )
    rows = []
    for scratch_code in codes:
        qr_code_id = generate_qr_code_id(request.brand_prefix)
        rows.append({
            "code_id": qr_code_id,
            "code_hash": hash_code(scratch_code, pepper),
            "brand_prefix": request.brand_prefix,
            "batch_id": batch_id,
            "product_name": request.product_name,
            "company_name": request.company_name,
            "manufacturer_id": request.manufacturer_id,
            "created_at": now,
            "updated_at": now,
        })

        qr_image = None
        if request.include_qr_images:
            qr_image, _ = generate_qr_code_data_url(qr_code_id, base_url)

        generated.codes.append(GeneratedCode(
            qr_code_id=qr_code_id,
            scratch_code=scratch_code,
            verification_url=verification_url(qr_code_id, base_url),
            qr_image=qr_image,
        ))

    inserted = insert_codes(session, rows)
    logger.info(f"Generated batch {batch_id}: {inserted} codes for {request.product_name} ({request.brand_prefix})")
    return generated


def codes_to_csv(codes: Iterable[GeneratedCode]) -> str:
    """
    Render generated codes as CSV for the print shop.

    Columns: qr_code_id, scratch_code, verification_url
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for code in codes:
        writer.writerow((code.qr_code_id, code.scratch_code, code.verification_url))
    return buffer.getvalue()
