"""Deterministic fingerprints for excerpts and derived entity ids.

Excerpt hashes are used for integrity verification of cited policy language:
re-hashing a stored excerpt must reproduce the stored hash on any platform
and across process restarts, so only the UTF-8 bytes of the text are hashed.
"""

import hashlib

EXCERPT_HASH_LENGTH = 32


def hash_excerpt(text: str) -> str:
    """Fingerprint an excerpt of text.

    Order-sensitive and defined for the empty string.

    Args:
        text: Excerpt text (compared byte-for-byte, no normalization)

    Returns:
        str: 32-char lowercase hex digest
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:EXCERPT_HASH_LENGTH]


def verify_excerpt(text: str, excerpt_hash: str) -> bool:
    """Check that an excerpt still matches its recorded hash."""
    return hash_excerpt(text) == excerpt_hash


def stable_id(prefix: str, *parts: object, length: int = 16) -> str:
    """Build a stable id from ordered parts, e.g. ``conc-3f9a...``.

    Parts are joined with a unit separator so that ("ab", "c") and
    ("a", "bc") never collide.
    """
    key_input = "\x1f".join(str(part) for part in parts)
    return f"{prefix}-{hash_excerpt(key_input)[:length]}"
