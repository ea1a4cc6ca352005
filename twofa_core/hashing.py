"""
Code Hashing Utilities
======================
Secure generation, hashing and verification of one-time codes.
"""

import hashlib
import hmac
from typing import Optional

from .sources import RandomSource, SecretsRandomSource

_default_random = SecretsRandomSource()


def generate_code(digits: int = 6, random: Optional[RandomSource] = None) -> str:
    """
    Generate a numeric one-time code without a leading zero.

    Args:
        digits: Number of digits
        random: Random source (defaults to ``secrets``)

    Returns:
        Code string in ``[10**(digits-1), 10**digits - 1]``
    """
    random = random or _default_random
    low = 10 ** (digits - 1)
    return str(low + random.randbelow(9 * low))


def generate_salt(random: Optional[RandomSource] = None) -> str:
    """Generate a random salt for code hashing."""
    return (random or _default_random).token_hex(16)


def hash_code(code: str, salt: str, key: str) -> str:
    """
    Keyed, salted digest of a code using HMAC-SHA256.

    Args:
        code: Plain code
        salt: Per-record salt
        key: Server-side secret key

    Returns:
        Hex digest
    """
    return hmac.new(key.encode(), f"{salt}:{code}".encode(), hashlib.sha256).hexdigest()


def verify_code_hash(code: str, salt: str, key: str, stored_hash: str) -> bool:
    """
    Verify a code against its stored digest.

    Uses constant-time comparison to prevent timing attacks.
    """
    computed_hash = hash_code(code, salt, key)
    return hmac.compare_digest(computed_hash, stored_hash)


def normalize_code(code: Optional[str]) -> str:
    """Strip whitespace from user input; ``None`` becomes an empty string."""
    if code is None:
        return ""
    return str(code).strip()

