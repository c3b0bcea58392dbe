"""Custom exception hierarchy for mmdb_images."""

from __future__ import annotations


class ImageCacheError(Exception):
    """Base class for all custom errors raised by mmdb_images."""


# --- 2-layer hierarchy ---

class InfrastructureError(ImageCacheError):
    """Base class for infrastructure-level errors."""


class ApplicationError(ImageCacheError):
    """Base class for application-level errors."""


# --- Infrastructure errors ---

class TransportError(InfrastructureError):
    """Raised when the remote origin cannot deliver the image bytes."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DiskIOError(InfrastructureError):
    """Raised when the on-disk cache cannot be read or written.

    Never surfaces to :meth:`ImageCache.image` callers; the disk layer logs it
    and behaves as if empty.
    """


# --- Application errors ---

class InvalidImageURLError(ApplicationError, ValueError):
    """Raised when an image URL is blank and cannot serve as a cache key."""


class DecodeError(ApplicationError):
    """Raised when fetched or stored bytes are not a decodable image."""


class FetchCancelled(ApplicationError):
    """Raised inside a shared fetch once every interested caller has gone."""


class CacheError(ApplicationError):
    """Raised to :meth:`ImageCache.image` callers when an image cannot be loaded.

    ``cause`` holds the underlying :class:`TransportError` or
    :class:`DecodeError` (also available as ``__cause__``).
    """

    def __init__(self, message: str, *, url: str | None = None, cause: BaseException | None = None):
        super().__init__(message)
        self.url = url
        self.cause = cause


# --- Settings errors ---

class SettingsError(ImageCacheError):
    """Base class for settings related failures."""


class SettingsLoadError(SettingsError):
    """Raised when the settings file cannot be parsed or loaded."""


class SettingsValidationError(SettingsError):
    """Raised when settings data fails schema validation."""
