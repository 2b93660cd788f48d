"""
Identifier and Hashing Helpers

- QR code id:  QR-{PREFIX}-{10 random symbols}     e.g. QR-EMB-7KQ2XR9DHM
- Batch id:    BATCH-{PREFIX}-{YYYYMMDD}-{6 symbols} e.g. BATCH-EMB-20261018-K7M2P9
- Code hash:   SHA-256 (HMAC-SHA256 when a pepper is configured) of the
               normalised scratch code. Deterministic so records can be
               looked up by hash; the raw code is never stored.
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Optional

from codes.scratch_codes import normalize_code, random_symbols

QR_ID_RANDOM_LENGTH = 10
BATCH_ID_RANDOM_LENGTH = 6


def generate_qr_code_id(brand_prefix: str) -> str:
    """
    Generate a scan-optimised identifier for the printed QR image.

    The id resolves to the same Code Record as the scratch code but carries
    no checksum: it is looked up, never typed.
    """
    return f"QR-{brand_prefix}-{random_symbols(QR_ID_RANDOM_LENGTH)}"


def generate_batch_id(brand_prefix: str, now: Optional[datetime] = None) -> str:
    """Generate a batch identifier for one generation run."""
    now = now or datetime.now(timezone.utc)
    return f"BATCH-{brand_prefix}-{now:%Y%m%d}-{random_symbols(BATCH_ID_RANDOM_LENGTH)}"


def hash_code(code: str, pepper: Optional[str] = None) -> str:
    """
    Hash a scratch code for storage and lookup.

    Args:
        code: Raw scratch code (any case, delimiters allowed)
        pepper: Optional server-side secret; enables HMAC-SHA256

    Returns:
        64-character hex digest
    """
    normalized = normalize_code(code).encode()
    if pepper:
        return hmac.new(pepper.encode(), normalized, hashlib.sha256).hexdigest()
    return hashlib.sha256(normalized).hexdigest()


def hashes_match(code: str, expected_hash: str, pepper: Optional[str] = None) -> bool:
    """Constant-time comparison of a presented code against a stored hash."""
    if not code or not expected_hash:
        return False
    return hmac.compare_digest(hash_code(code, pepper), expected_hash)


def format_code(code: str) -> str:
    """
    Group a code for printing: XXX-XXX-XXX-XXX.

    Example:
        >>> format_code("EMB7KQ2XR9DH")
        'EMB-7KQ-2XR-9DH'
    """
    code = normalize_code(code)
    return "-".join(code[i:i + 3] for i in range(0, len(code), 3))


def mask_code(code: str) -> str:
    """
    Mask a typed code for the attempt log, keeping prefix and last 3 symbols.

    Example:
        >>> mask_code("EMB7KQ2XR9DH")
        'EMB******9DH'
    """
    code = normalize_code(code or "")
    if len(code) <= 6:
        return code
    return code[:3] + "*" * (len(code) - 6) + code[-3:]


def short_hash(code_hash: str) -> str:
    """Shortened hash for log lines (raw codes are never logged)."""
    return (code_hash or "")[:12]
