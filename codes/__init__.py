"""
Product code encoding for Emboditrust.

Scratch codes (checksum protected, human typed) and the identifiers and
hashes that link them to stored Code Records.
"""

from .scratch_codes import (
    ALPHABET,
    BRAND_PREFIXES,
    CODE_LENGTH,
    brand_for_code,
    calculate_check_symbol,
    check_brand_prefix,
    generate_batch,
    generate_code,
    normalize_code,
    register_brand_prefix,
    validate_code,
)
from .identifiers import (
    format_code,
    generate_batch_id,
    generate_qr_code_id,
    hash_code,
    hashes_match,
)

__all__ = [
    "ALPHABET",
    "BRAND_PREFIXES",
    "CODE_LENGTH",
    "brand_for_code",
    "calculate_check_symbol",
    "check_brand_prefix",
    "generate_batch",
    "generate_code",
    "normalize_code",
    "register_brand_prefix",
    "validate_code",
    "format_code",
    "generate_batch_id",
    "generate_qr_code_id",
    "hash_code",
    "hashes_match",
]
