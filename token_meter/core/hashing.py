"""
API key hashing.

Turns raw credentials into irreversible digests before they reach storage.
"""

import hashlib


def hash_api_key(api_key: str) -> str:
    """Create a SHA-256 hex digest of an API key.

    Args:
        api_key: Raw API key

    Returns:
        64-character hex digest, or an empty string for an empty key
    """
    if not api_key:
        return ""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()
