"""Default configuration values for mmdb_images."""

from __future__ import annotations

from datetime import timedelta
from typing import Final

# Cost is a proxy for the decoded bitmap footprint, not the encoded file size.
# Decoded images are budgeted as 4 bytes (RGBA) per pixel regardless of the
# colour mode Pillow happens to decode into.
BYTES_PER_PIXEL: Final[int] = 4

DEFAULT_MAX_TOTAL_COST: Final[int] = 30 * 1024 * 1024
DEFAULT_MAX_ENTRY_COUNT: Final[int] = 50

# Disk entries not read or written within this window are swept when the host
# reports that it entered the background.
DISK_RETENTION: Final[timedelta] = timedelta(days=7)
DISK_CACHE_DIR_NAME: Final[str] = "images"
DISK_FILE_SUFFIX: Final[str] = ".img"
# In-progress writes; a crash can leave these behind for the sweeps to collect.
DISK_TEMP_SUFFIX: Final[str] = ".tmp"

HTTP_TIMEOUT_SEC: Final[float] = 30.0
HTTP_CHUNK_SIZE: Final[int] = 64 * 1024
HTTP_USER_AGENT: Final[str] = "mmdb-images/0.1"

FETCH_WORKERS: Final[int] = 4

# ---------------------------------------------------------------------------
# TMDB image endpoints
# ---------------------------------------------------------------------------

TMDB_IMAGE_BASE_URL: Final[str] = "https://image.tmdb.org/t/p"
POSTER_SIZE: Final[str] = "w500"
BACKDROP_SIZE: Final[str] = "w780"
