from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

from mmdb_images.config import BYTES_PER_PIXEL
from mmdb_images.domain.models import CachedImage
from mmdb_images.errors import DecodeError


class PillowImageDecoder:
    """
    Decodes encoded image bytes (JPEG, PNG, WebP...) into a :class:`CachedImage`.
    """

    def __init__(self, bytes_per_pixel: int = BYTES_PER_PIXEL):
        self._bytes_per_pixel = bytes_per_pixel

    def decode(self, data: bytes) -> CachedImage:
        if not data:
            raise DecodeError("empty image payload")
        try:
            with io.BytesIO(data) as bio:
                img = Image.open(bio)
                img.load()  # Force full decode while the buffer is open
                img = img.copy()
        except (
            UnidentifiedImageError,
            OSError,
            SyntaxError,  # Pillow reports malformed chunks this way
            EOFError,
            ValueError,
            Image.DecompressionBombError,
        ) as e:
            raise DecodeError(f"cannot decode image ({len(data)} bytes): {e}") from e
        return CachedImage.from_image(img, self._bytes_per_pixel)
