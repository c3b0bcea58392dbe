"""L2: Disk-based image store with XXH3 hash bucketing."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import timedelta
from pathlib import Path

from mmdb_images.config import DISK_FILE_SUFFIX, DISK_TEMP_SUFFIX
from mmdb_images.domain.models import CacheKey
from mmdb_images.errors import DiskIOError
from mmdb_images.utils.hashutils import key_xxh3

LOGGER = logging.getLogger(__name__)


class DiskStore:
    """L2: Disk image store using a hash-bucketed directory layout.

    Files hold the encoded bytes exactly as the transport delivered them.
    Reads run on whatever worker calls :meth:`read`; writes and expiry
    sweeps are queued on a private low-priority executor and never block
    the caller.  Every I/O failure is logged and treated as a miss (read)
    or a no-op (write).
    """

    def __init__(self, cache_dir: Path, executor: ThreadPoolExecutor | None = None):
        self._cache_dir = cache_dir
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Disk cache directory %s unavailable: %s", cache_dir, exc)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="mmdb-disk"
        )
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def read(self, key: CacheKey) -> bytes | None:
        path = self.path_for(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            LOGGER.warning("Disk cache read failed for %s: %s", key, exc)
            return None
        try:
            # Reads count as access for the retention sweep.
            os.utime(path)
        except OSError:
            pass
        return data

    def contains(self, key: CacheKey) -> bool:
        try:
            return self.path_for(key).is_file()
        except OSError:
            return False

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def write(self, key: CacheKey, data: bytes) -> Future:
        """Queue *data* for storage under *key* and return immediately."""

        return self._submit(self._write_guarded, key, data)

    def remove(self, key: CacheKey) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Disk cache remove failed for %s: %s", key, exc)

    def remove_expired(self, older_than: timedelta, *, now: float | None = None) -> int:
        """Delete entries not accessed within *older_than*; return the count.

        Stale temp files from interrupted writes are swept too.
        """

        cutoff = (time.time() if now is None else now) - older_than.total_seconds()
        removed = 0
        for path in self._iter_files():
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
                path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.warning("Disk cache sweep skipped %s: %s", path.name, exc)
                continue
            if path.suffix == DISK_FILE_SUFFIX:
                removed += 1
        if removed:
            LOGGER.info("Removed %d expired disk cache entries", removed)
        return removed

    def schedule_remove_expired(self, older_than: timedelta) -> Future:
        return self._submit(self._remove_expired_guarded, older_than)

    def remove_all(self) -> int:
        """Delete every entry, after any writes queued before this call.

        Blocks until done and returns the number of entries removed.
        """

        return self.schedule_remove_all().result()

    def schedule_remove_all(self) -> Future:
        return self._submit(self._remove_all_now, inline_when_closed=True)

    def size_bytes(self) -> int:
        total = 0
        for path in self._iter_entries():
            try:
                total += path.stat().st_size
            except OSError:
                continue
        return total

    def entry_count(self) -> int:
        return sum(1 for _ in self._iter_entries())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for queued writes; return ``False`` if *timeout* expired."""

        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _done, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        """Shut down the internal executor if it was created by this store."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def path_for(self, key: CacheKey) -> Path:
        hash_hex = key_xxh3(key)
        return self._cache_dir / hash_hex[:2] / f"{hash_hex}{DISK_FILE_SUFFIX}"

    def _iter_entries(self):
        yield from self._glob(f"*/*{DISK_FILE_SUFFIX}")

    def _iter_files(self):
        """Entries plus leftover temp files."""
        yield from self._iter_entries()
        yield from self._glob(f"*/.*{DISK_TEMP_SUFFIX}")

    def _glob(self, pattern: str):
        try:
            yield from self._cache_dir.glob(pattern)
        except OSError as exc:
            LOGGER.warning("Disk cache listing failed: %s", exc)

    def _submit(self, fn, *args, inline_when_closed: bool = False) -> Future:
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError as exc:
            # Executor already shut down: writes become no-ops, maintenance
            # runs on the calling thread.
            future = Future()
            if inline_when_closed:
                future.set_result(fn(*args))
            else:
                LOGGER.warning("Disk cache executor unavailable: %s", exc)
                future.set_result(None)
            return future
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _write_guarded(self, key: CacheKey, data: bytes) -> None:
        try:
            self._write_file(self.path_for(key), data)
        except DiskIOError as exc:
            LOGGER.warning("Disk cache write failed for %s: %s", key, exc)

    def _remove_all_now(self) -> int:
        removed = 0
        for path in self._iter_files():
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.warning("Disk cache clear skipped %s: %s", path.name, exc)
                continue
            if path.suffix == DISK_FILE_SUFFIX:
                removed += 1
        return removed

    def _remove_expired_guarded(self, older_than: timedelta) -> int:
        try:
            return self.remove_expired(older_than)
        except Exception:
            LOGGER.exception("Disk cache sweep failed")
            return 0

    def _write_file(self, path: Path, data: bytes) -> None:
        """Write *data* atomically so readers never observe a partial file."""

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=DISK_TEMP_SUFFIX)
        except OSError as exc:
            raise DiskIOError(str(exc)) from exc
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise DiskIOError(str(exc)) from exc
