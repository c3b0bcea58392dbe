"""Hashing utilities."""

from __future__ import annotations

import xxhash


def key_xxh3(key: str) -> str:
    """Return the XXH3 128-bit hex digest of *key*.

    Used to derive filesystem-safe, fixed-length names from image URLs.
    """

    return xxhash.xxh3_128(key.encode("utf-8")).hexdigest()
