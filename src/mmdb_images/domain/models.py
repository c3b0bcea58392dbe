from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from PIL import Image

from ..config import BACKDROP_SIZE, BYTES_PER_PIXEL, POSTER_SIZE, TMDB_IMAGE_BASE_URL
from ..errors import InvalidImageURLError

# The cache key is the source URL itself; only the disk layer hashes it.
CacheKey = str


def cache_key_for_url(url: str) -> CacheKey:
    """Return the stable cache key for *url*."""

    key = url.strip()
    if not key:
        raise InvalidImageURLError("image URL must not be empty")
    return key


def image_cost(width: int, height: int, bytes_per_pixel: int = BYTES_PER_PIXEL) -> int:
    return max(0, width) * max(0, height) * bytes_per_pixel


@dataclass(frozen=True)
class CachedImage:
    """A decoded image and the memory budget it consumes."""

    image: Image.Image
    width: int
    height: int
    cost: int

    @classmethod
    def from_image(cls, image: Image.Image, bytes_per_pixel: int = BYTES_PER_PIXEL) -> CachedImage:
        width, height = image.size
        return cls(
            image=image,
            width=width,
            height=height,
            cost=image_cost(width, height, bytes_per_pixel),
        )


def image_url(path: Optional[str], size: str) -> Optional[str]:
    """Build a TMDB image URL for *path* at *size*, or ``None`` without a path."""

    if not path:
        return None
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{TMDB_IMAGE_BASE_URL}/{size}{path}"


def poster_url(path: Optional[str]) -> Optional[str]:
    return image_url(path, POSTER_SIZE)


def backdrop_url(path: Optional[str]) -> Optional[str]:
    return image_url(path, BACKDROP_SIZE)
