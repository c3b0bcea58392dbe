from __future__ import annotations

import threading
from typing import Protocol

from mmdb_images.domain.models import CachedImage


class Transport(Protocol):
    """Fetches raw bytes for a URL; external collaborator of the cache."""

    def fetch(self, url: str, cancel_event: threading.Event | None = None) -> bytes:
        """
        Return the body for *url*.
        Raises TransportError on network/HTTP failure and FetchCancelled once
        *cancel_event* is set.
        """
        ...


class ImageDecoder(Protocol):
    """Turns encoded bytes into a costed, decoded image."""

    def decode(self, data: bytes) -> CachedImage:
        """Raises DecodeError when *data* is not an image."""
        ...
