"""Two-tier image cache and prefetch engine for the MMDB movie browser."""

from __future__ import annotations

__version__ = "0.1.0"
