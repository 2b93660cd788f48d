"""
First-Use Verification State Machine

Decides the outcome of a verification attempt against a stored Code Record
and records it exactly once:

| Record state                        | Action                       | Result                    |
|-------------------------------------|------------------------------|---------------------------|
| first_verified_at is NULL           | conditional set + increment  | valid (first verification)|
| first_verified_at set               | increment                    | already_used              |
| no record                           | none                         | invalid                   |
| suspected_counterfeit               | none                         | suspected_counterfeit     |
| revoked / expired                   | none                         | invalid                   |

The first-use decision is made by the datastore in one atomic
UPDATE ... RETURNING (database.crud.record_verification); the result is
derived from the returned post-update count, never from an earlier read.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import sessionmaker

from codes.identifiers import hash_code, hashes_match, mask_code, short_hash
from codes.scratch_codes import BRAND_PREFIXES, normalize_code, validate_code
from database.connection import get_db
from database.crud import get_code_by_code_id, get_code_by_hash, record_verification
from database.models import CodeStatus, ProductCode, VerificationResult
from verification.audit import AttemptContext, AuditLog
from verification.errors import StorageUnavailable

logger = logging.getLogger(__name__)

# Reasons attached to non-valid outcomes
REASON_CHECKSUM_MISMATCH = "checksum_mismatch"
REASON_NOT_FOUND = "not_found"
REASON_SCRATCH_MISMATCH = "scratch_mismatch"
REASON_FLAGGED = "flagged"
REASON_REVOKED = "revoked"
REASON_EXPIRED = "expired"

_FLAGGED_OUTCOMES = {
    CodeStatus.SUSPECTED_COUNTERFEIT.value: (VerificationResult.SUSPECTED_COUNTERFEIT, REASON_FLAGGED),
    CodeStatus.REVOKED.value: (VerificationResult.INVALID, REASON_REVOKED),
    CodeStatus.EXPIRED.value: (VerificationResult.INVALID, REASON_EXPIRED),
}

_STORAGE_ERRORS = (OperationalError, DBAPIError, PoolTimeoutError)


@dataclass(frozen=True)
class VerificationOutcome:
    """Transport-independent result of one verification attempt."""

    result: VerificationResult
    verification_count: int = 0
    first_verified_at: Optional[datetime] = None
    code_id: Optional[str] = None
    reason: Optional[str] = None
    product: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_first_verification(self) -> bool:
        return self.result == VerificationResult.VALID

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "result": self.result.value,
            "is_first_verification": self.is_first_verification,
            "verification_count": self.verification_count,
            "first_verified_at": self.first_verified_at.isoformat() if self.first_verified_at else None,
            "reason": self.reason,
        }
        if self.product:
            data["product"] = dict(self.product)
        return data


def product_info(code: ProductCode) -> Dict[str, Any]:
    """Public, non-sensitive details of a Code Record."""
    return {
        "code_id": code.code_id,
        "product_name": code.product_name,
        "company_name": code.company_name,
        "manufacturer_id": code.manufacturer_id,
        "batch_id": code.batch_id,
        "brand_prefix": code.brand_prefix,
        "brand": BRAND_PREFIXES.get(code.brand_prefix),
    }


class CodeVerifier:
    """
    Verification state machine bound to a session factory.

    Stateless between calls: safe to share across request handlers and
    threads. Concurrency correctness comes from the single atomic storage
    update, not from in-process locking.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        audit_log: Optional[AuditLog] = None,
        pepper: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self.audit_log = audit_log or AuditLog(session_factory)
        self.pepper = pepper
        self.clock = clock

    def verify_scratch_code(self, raw_code: str, context: Optional[AttemptContext] = None) -> VerificationOutcome:
        """
        Verify a typed scratch code (web form, USSD, SMS).

        The checksum is checked before any storage access; codes that fail it
        are invalid without a lookup.

        Raises:
            StorageUnavailable: Datastore failure during lookup or update
        """
        context = context or AttemptContext()
        code = normalize_code(raw_code or "")
        now = self.clock()

        if not validate_code(code):
            outcome = VerificationOutcome(VerificationResult.INVALID, reason=REASON_CHECKSUM_MISMATCH)
            self._log(outcome, context, now, scanned_code=mask_code(code))
            return outcome

        code_hash = hash_code(code, self.pepper)
        outcome = self._decide(context, now, code_hash=code_hash)
        self._log(outcome, context, now, scanned_code=mask_code(code), code_hash=code_hash, code_id=outcome.code_id)
        return outcome

    def verify_code_hash(self, code_hash: str, context: Optional[AttemptContext] = None) -> VerificationOutcome:
        """Verify by a pre-computed scratch code hash (gateways that hash upstream)."""
        context = context or AttemptContext()
        now = self.clock()
        outcome = self._decide(context, now, code_hash=code_hash)
        self._log(outcome, context, now, code_hash=code_hash, code_id=outcome.code_id)
        return outcome

    def verify_qr_code(
        self,
        qr_code_id: str,
        scratch_code: Optional[str] = None,
        context: Optional[AttemptContext] = None,
    ) -> VerificationOutcome:
        """
        Verify by QR code identifier, optionally confirming the scratch code.

        When a scratch code is supplied it must hash to the record's stored
        hash; a mismatch is invalid and mutates nothing.
        """
        context = context or AttemptContext(channel="qr")
        now = self.clock()

        if scratch_code is not None:
            record = self._lookup(code_id=qr_code_id)
            if record is not None and not hashes_match(scratch_code, record.code_hash, self.pepper):
                outcome = VerificationOutcome(
                    VerificationResult.INVALID,
                    code_id=record.code_id,
                    reason=REASON_SCRATCH_MISMATCH,
                    product=product_info(record),
                )
                self._log(outcome, context, now, scanned_code=qr_code_id, code_id=record.code_id)
                return outcome

        outcome = self._decide(context, now, code_id=qr_code_id)
        self._log(outcome, context, now, scanned_code=qr_code_id, code_id=outcome.code_id)
        return outcome

    def _decide(self, context: AttemptContext, now: datetime, **key) -> VerificationOutcome:
        record = self._lookup(**key)
        if record is None:
            logger.info(f"Verification via {context.channel}: no record for {self._describe(key)}")
            return VerificationOutcome(VerificationResult.INVALID, reason=REASON_NOT_FOUND)

        flagged = self._flagged_outcome(record)
        if flagged is not None:
            return flagged

        row = self._increment(now, **key)
        if row is None:
            # Status changed between lookup and update (e.g. an admin flag)
            record = self._lookup(**key)
            if record is not None:
                flagged = self._flagged_outcome(record)
                if flagged is not None:
                    return flagged
            return VerificationOutcome(VerificationResult.INVALID, reason=REASON_NOT_FOUND)

        result = VerificationResult.VALID if row.verification_count == 1 else VerificationResult.ALREADY_USED
        logger.info(
            f"Verification via {context.channel}: {row.code_id} -> {result.value} "
            f"(count={row.verification_count})"
        )
        return VerificationOutcome(
            result,
            verification_count=row.verification_count,
            first_verified_at=row.first_verified_at,
            code_id=row.code_id,
            product=product_info(record),
        )

    def _flagged_outcome(self, record: ProductCode) -> Optional[VerificationOutcome]:
        if record.status not in _FLAGGED_OUTCOMES:
            return None
        result, reason = _FLAGGED_OUTCOMES[record.status]
        logger.warning(f"Verification of flagged code {record.code_id} (status={record.status})")
        return VerificationOutcome(
            result,
            verification_count=record.verification_count,
            first_verified_at=record.first_verified_at,
            code_id=record.code_id,
            reason=reason,
            product=product_info(record),
        )

    def _lookup(self, code_hash: Optional[str] = None, code_id: Optional[str] = None) -> Optional[ProductCode]:
        try:
            with get_db(self.session_factory) as db:
                if code_hash is not None:
                    return get_code_by_hash(db, code_hash)
                return get_code_by_code_id(db, code_id)
        except _STORAGE_ERRORS as e:
            logger.error(f"Code lookup failed: {e}")
            raise StorageUnavailable("Code lookup failed") from e

    def _increment(self, now: datetime, **key):
        try:
            with get_db(self.session_factory) as db:
                return record_verification(db, now, **key)
        except _STORAGE_ERRORS as e:
            logger.error(f"Atomic verification update failed: {e}")
            raise StorageUnavailable("Verification update could not be confirmed") from e

    def _log(self, outcome: VerificationOutcome, context: AttemptContext, now: datetime, **fields) -> None:
        self.audit_log.try_append(
            result=outcome.result.value,
            context=context,
            timestamp=now,
            reason=outcome.reason,
            **fields,
        )

    @staticmethod
    def _describe(key: Dict[str, Optional[str]]) -> str:
        if key.get("code_hash"):
            return f"hash {short_hash(key['code_hash'])}"
        return f"code id {key.get('code_id')}"
