"""
CRUD operations for Emboditrust

Functions add/flush but do not commit; callers own the transaction
(normally through database.connection.get_db).
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.engine import Row
from sqlalchemy.orm import Session

from database.models import (
    VERIFIABLE_STATUSES,
    Batch,
    CodeStatus,
    CounterfeitReport,
    ProductCode,
    VerificationAttempt,
    VerificationResult,
)

INSERT_CHUNK_SIZE = 500


def create_batch(db: Session, batch_data: dict) -> Batch:
    """Create new batch record."""
    batch = Batch(**batch_data)
    db.add(batch)
    db.flush()
    return batch


def batch_exists(db: Session, batch_id: str) -> bool:
    return db.scalar(select(func.count(Batch.id)).where(Batch.batch_id == batch_id)) > 0


def get_batch(db: Session, batch_id: str) -> Optional[Batch]:
    return db.scalar(select(Batch).where(Batch.batch_id == batch_id))


def insert_codes(db: Session, code_rows: Iterable[dict]) -> int:
    """
    Insert Code Records in chunks.

    Every row starts as active with a zero verification count regardless of
    what the caller passes.

    Returns:
        Number of rows inserted
    """
    inserted = 0
    chunk: List[ProductCode] = []
    for row in code_rows:
        chunk.append(ProductCode(
            **row,
            status=CodeStatus.ACTIVE.value,
            verification_count=0,
            first_verified_at=None,
            last_verified_at=None,
        ))
        if len(chunk) >= INSERT_CHUNK_SIZE:
            db.add_all(chunk)
            db.flush()
            inserted += len(chunk)
            chunk = []

    if chunk:
        db.add_all(chunk)
        db.flush()
        inserted += len(chunk)

    return inserted


def get_code_by_hash(db: Session, code_hash: str) -> Optional[ProductCode]:
    return db.scalar(select(ProductCode).where(ProductCode.code_hash == code_hash))


def get_code_by_code_id(db: Session, code_id: str) -> Optional[ProductCode]:
    return db.scalar(select(ProductCode).where(ProductCode.code_id == code_id))


def record_verification(
    db: Session,
    now: datetime,
    code_hash: Optional[str] = None,
    code_id: Optional[str] = None,
) -> Optional[Row]:
    """
    Atomically count one verification against a Code Record.

    A single UPDATE ... RETURNING statement increments verification_count,
    stamps last_verified_at, moves status to verified and sets
    first_verified_at only if it was NULL. The datastore serialises
    concurrent updates to the same row, so exactly one caller ever sees
    verification_count == 1 in the returned row.

    Only records in a verifiable status (active, verified) are touched.

    Returns:
        Row(code_id, verification_count, first_verified_at, status) or None
        when no verifiable record matched
    """
    if (code_hash is None) == (code_id is None):
        raise ValueError("Exactly one of code_hash or code_id is required")

    stmt = (
        update(ProductCode)
        .where(ProductCode.status.in_(VERIFIABLE_STATUSES))
        .values(
            verification_count=ProductCode.verification_count + 1,
            first_verified_at=func.coalesce(ProductCode.first_verified_at, now),
            last_verified_at=now,
            status=CodeStatus.VERIFIED.value,
            updated_at=now,
        )
        .returning(
            ProductCode.code_id,
            ProductCode.verification_count,
            ProductCode.first_verified_at,
            ProductCode.status,
        )
        .execution_options(synchronize_session=False)
    )
    if code_hash is not None:
        stmt = stmt.where(ProductCode.code_hash == code_hash)
    else:
        stmt = stmt.where(ProductCode.code_id == code_id)

    return db.execute(stmt).one_or_none()


def set_code_status(db: Session, code_id: str, status: str, now: datetime) -> Optional[ProductCode]:
    """Administrative status override. Counts and timestamps are left untouched."""
    code = get_code_by_code_id(db, code_id)
    if not code:
        return None
    code.status = status
    code.updated_at = now
    db.flush()
    return code


def code_status_counts(db: Session, batch_id: Optional[str] = None) -> Dict[str, int]:
    """Count Code Records per status, optionally within one batch."""
    stmt = select(ProductCode.status, func.count(ProductCode.id)).group_by(ProductCode.status)
    if batch_id:
        stmt = stmt.where(ProductCode.batch_id == batch_id)

    counts = {status.value: 0 for status in CodeStatus}
    for status, count in db.execute(stmt):
        counts[status] = count
    return counts


def create_attempt(db: Session, attempt_data: dict) -> VerificationAttempt:
    """Append one Verification Attempt."""
    attempt = VerificationAttempt(**attempt_data)
    db.add(attempt)
    db.flush()
    return attempt


def find_recent_attempt(
    db: Session,
    code_hash: str,
    phone_number: str,
    since: datetime,
) -> Optional[VerificationAttempt]:
    """Latest attempt for a code hash from one phone number since a point in time."""
    return db.scalar(
        select(VerificationAttempt)
        .where(
            VerificationAttempt.code_hash == code_hash,
            VerificationAttempt.phone_number == phone_number,
            VerificationAttempt.timestamp >= since,
        )
        .order_by(VerificationAttempt.timestamp.desc(), VerificationAttempt.id.desc())
        .limit(1)
    )


def _attempt_filters(filters: Dict[str, Any]) -> list:
    conditions = []
    if filters.get("scanned_code"):
        conditions.append(VerificationAttempt.scanned_code == filters["scanned_code"])
    if filters.get("code_id"):
        conditions.append(VerificationAttempt.code_id == filters["code_id"])
    if filters.get("result"):
        conditions.append(VerificationAttempt.result == filters["result"])
    if filters.get("channel"):
        conditions.append(VerificationAttempt.channel == filters["channel"])
    if filters.get("ip_address"):
        conditions.append(VerificationAttempt.ip_address == filters["ip_address"])
    if filters.get("start_date"):
        conditions.append(VerificationAttempt.timestamp >= filters["start_date"])
    if filters.get("end_date"):
        conditions.append(VerificationAttempt.timestamp <= filters["end_date"])
    return conditions


def list_attempts(
    db: Session,
    filters: Optional[Dict[str, Any]] = None,
    page: int = 1,
    limit: int = 100,
) -> List[VerificationAttempt]:
    """Attempts matching the filters, newest first."""
    conditions = _attempt_filters(filters or {})
    return list(db.scalars(
        select(VerificationAttempt)
        .where(*conditions)
        .order_by(VerificationAttempt.timestamp.desc(), VerificationAttempt.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ))


def attempt_stats(db: Session, filters: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
    """
    Aggregate attempts for dashboards.

    Returns:
        Dict with total_attempts, a count per result value, unique_codes and unique_ips
    """
    conditions = _attempt_filters(filters or {})

    stats = {"total_attempts": 0}
    stats.update({result.value: 0 for result in VerificationResult})

    by_result = db.execute(
        select(VerificationAttempt.result, func.count(VerificationAttempt.id))
        .where(*conditions)
        .group_by(VerificationAttempt.result)
    )
    for result, count in by_result:
        stats[result] = count
        stats["total_attempts"] += count

    stats["unique_codes"] = db.scalar(
        select(func.count(func.distinct(VerificationAttempt.scanned_code))).where(*conditions)
    ) or 0
    stats["unique_ips"] = db.scalar(
        select(func.count(func.distinct(VerificationAttempt.ip_address))).where(*conditions)
    ) or 0
    return stats


def create_report(db: Session, report_data: dict) -> CounterfeitReport:
    """Create new counterfeit report."""
    report = CounterfeitReport(**report_data)
    db.add(report)
    db.flush()
    return report


def existing_code_hashes(db: Session, code_hashes: List[str]) -> set:
    """Subset of the given hashes already stored."""
    found = set()
    for start in range(0, len(code_hashes), INSERT_CHUNK_SIZE):
        chunk = code_hashes[start:start + INSERT_CHUNK_SIZE]
        found.update(db.scalars(select(ProductCode.code_hash).where(ProductCode.code_hash.in_(chunk))))
    return found
