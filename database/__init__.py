"""
Database package for Emboditrust
"""

from .models import (
    Base,
    Batch,
    CodeStatus,
    CounterfeitReport,
    ProductCode,
    VerificationAttempt,
    VerificationResult,
)
from .connection import get_db, engine, init_database
from .crud import (
    attempt_stats,
    batch_exists,
    code_status_counts,
    create_attempt,
    create_batch,
    create_report,
    get_batch,
    existing_code_hashes,
    find_recent_attempt,
    get_code_by_code_id,
    get_code_by_hash,
    insert_codes,
    list_attempts,
    record_verification,
    set_code_status,
)

__all__ = [
    "Base",
    "Batch",
    "CodeStatus",
    "CounterfeitReport",
    "ProductCode",
    "VerificationAttempt",
    "VerificationResult",
    "get_db",
    "engine",
    "init_database",
    "attempt_stats",
    "batch_exists",
    "code_status_counts",
    "create_attempt",
    "create_batch",
    "create_report",
    "get_batch",
    "existing_code_hashes",
    "find_recent_attempt",
    "get_code_by_code_id",
    "get_code_by_hash",
    "insert_codes",
    "list_attempts",
    "record_verification",
    "set_code_status",
]
