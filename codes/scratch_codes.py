"""
Scratch Code Generation and Validation

Generates and validates the 12-symbol product authentication codes printed
under the scratch panel of every protected product.

Structure: [Brand Prefix][Random][Check 1][Check 2][Entropy]
Example:   EMB 7KQ2XR 9 D H

- Symbols 0-2:  brand prefix (registered, 3 symbols)
- Symbols 3-8:  6 cryptographically random symbols
- Symbol 9:     Luhn mod-32 check symbol over symbols 0-8
- Symbol 10:    Luhn mod-32 check symbol over symbols 0-9
- Symbol 11:    1 random symbol (not checksum protected)

All arithmetic is base 32 over ALPHABET. Validation needs no storage lookup,
so corrupted or fabricated codes are rejected before touching the database.
"""

import re
import secrets
from typing import Dict, List, Optional

from verification.errors import InvalidBrandPrefix

# 32 symbols: digits without 0/1, letters without I/O
ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
BASE = len(ALPHABET)

_SYMBOL_VALUES = {symbol: value for value, symbol in enumerate(ALPHABET)}

CODE_LENGTH = 12
PREFIX_LENGTH = 3
RANDOM_LENGTH = 6

BRAND_PREFIXES: Dict[str, str] = {
    "EMB": "Emboditrust",
    "GSK": "GlaxoSmithKline",
    "PZC": "PZ Cussons",
    "FDS": "Fidson",
    "MAB": "May & Baker",
    "BGR": "Biogaran",
    "SAN": "Sanofi",
    "NVS": "Novartis",
    "RCH": "Roche",
    "AZN": "AstraZeneca",
}


def symbol_value(symbol: str) -> int:
    """Map an alphabet symbol to its integer value (0-31)."""
    try:
        return _SYMBOL_VALUES[symbol]
    except KeyError:
        raise ValueError(f"Symbol {symbol!r} is not in the code alphabet") from None


def value_symbol(value: int) -> str:
    """Map an integer value (0-31) back to its alphabet symbol."""
    return ALPHABET[value]


def calculate_check_symbol(payload: str) -> str:
    """
    Calculate a Luhn mod-32 check symbol.

    Args:
        payload: Alphabet symbols to protect

    Returns:
        Single check symbol

    Algorithm:
    1. Starting from the right, double every second symbol value
    2. Fold doubled values >= 32 by adding their base-32 digits
    3. Sum all values
    4. Check value = (32 - (sum mod 32)) mod 32
    """
    total = 0
    for i, symbol in enumerate(reversed(payload)):
        value = symbol_value(symbol)
        if i % 2 == 1:
            value *= 2
            if value >= BASE:
                value = value // BASE + value % BASE
        total += value

    return value_symbol((BASE - total % BASE) % BASE)


def normalize_code(text: str) -> str:
    """
    Uppercase a typed code and strip whitespace and the - and . delimiters.

    Any other character is kept so the code fails validation instead of
    being silently repaired.
    """
    return re.sub(r"[\s.\-]", "", text.upper())


def random_symbols(length: int) -> str:
    """Draw symbols uniformly from ALPHABET using the OS CSPRNG."""
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def is_registered_prefix(brand_prefix: str) -> bool:
    return brand_prefix in BRAND_PREFIXES


def register_brand_prefix(brand_prefix: str, brand_name: str) -> None:
    """
    Register a brand prefix so codes can be generated for it.

    Raises:
        InvalidBrandPrefix: If the prefix is not exactly 3 alphabet symbols
    """
    if len(brand_prefix) != PREFIX_LENGTH or any(s not in _SYMBOL_VALUES for s in brand_prefix):
        raise InvalidBrandPrefix(
            f"Brand prefix must be {PREFIX_LENGTH} symbols from the code alphabet, got {brand_prefix!r}"
        )
    BRAND_PREFIXES[brand_prefix] = brand_name


def check_brand_prefix(brand_prefix: str) -> None:
    """Raise InvalidBrandPrefix unless the prefix is registered."""
    if not isinstance(brand_prefix, str) or len(brand_prefix) != PREFIX_LENGTH:
        raise InvalidBrandPrefix(f"Brand prefix must be {PREFIX_LENGTH} characters, got {brand_prefix!r}")
    if brand_prefix not in BRAND_PREFIXES:
        raise InvalidBrandPrefix(f"Brand prefix {brand_prefix!r} is not registered")


def generate_code(brand_prefix: str = "EMB") -> str:
    """
    Generate one scratch code for a registered brand.

    Args:
        brand_prefix: 3-symbol registered brand prefix

    Returns:
        12-symbol code that passes validate_code()

    Raises:
        InvalidBrandPrefix: Prefix unknown or malformed (checked before any randomness is drawn)

    Example:
        >>> code = generate_code("EMB")
        >>> validate_code(code)
        True
    """
    check_brand_prefix(brand_prefix)

    payload = brand_prefix + random_symbols(RANDOM_LENGTH)
    check_1 = calculate_check_symbol(payload)
    check_2 = calculate_check_symbol(payload + check_1)

    return payload + check_1 + check_2 + random_symbols(1)


def validate_code(code: str) -> bool:
    """
    Validate a presented code's structure and both check symbols.

    Input is case-normalised and delimiters are stripped first, so
    "emb-7kq-2xr-9dh" validates the same as "EMB7KQ2XR9DH".

    Returns:
        True if both check symbols match, False otherwise
    """
    if not code:
        return False

    code = normalize_code(code)
    if len(code) != CODE_LENGTH:
        return False
    if any(symbol not in _SYMBOL_VALUES for symbol in code):
        return False

    payload = code[:9]
    expected_1 = calculate_check_symbol(payload)
    expected_2 = calculate_check_symbol(payload + expected_1)

    return code[9] == expected_1 and code[10] == expected_2


def brand_for_code(code: str) -> Optional[str]:
    """Return the brand name registered for a code's prefix, if any."""
    if not code:
        return None
    return BRAND_PREFIXES.get(code[:PREFIX_LENGTH].upper())


def generate_batch(quantity: int, brand_prefix: str = "EMB") -> List[str]:
    """
    Generate a batch of distinct scratch codes.

    In-batch duplicates are rejected via set membership and redrawn until
    `quantity` unique codes exist. With 32^6 random combinations per prefix
    collisions are rare for any realistic batch (<= 10,000).

    Args:
        quantity: Number of codes to produce
        brand_prefix: 3-symbol registered brand prefix

    Returns:
        List of unique codes in generation order
    """
    check_brand_prefix(brand_prefix)
    if quantity < 0:
        raise ValueError(f"Quantity must be non-negative, got {quantity}")

    codes: List[str] = []
    seen = set()

    while len(codes) < quantity:
        code = generate_code(brand_prefix)
        if code in seen:
            continue
        seen.add(code)
        codes.append(code)

    return codes
