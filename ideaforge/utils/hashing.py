"""
Hashing utilities for session identity.
"""

from __future__ import annotations

import hashlib


def sha256_hash(content: str | bytes) -> str:
    """Return the SHA-256 hex digest of the given content."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def normalize_identity(identity: str) -> str:
    """Case-fold and use forward slashes so the same file always hashes alike."""
    return identity.replace("\\", "/").casefold()


def short_digest(content: str, length: int = 16) -> str:
    """First *length* hex characters of the SHA-256 digest."""
    return sha256_hash(content)[:length]
