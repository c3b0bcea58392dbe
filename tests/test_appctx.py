"""Tests for ImageCacheContext: the composition root."""

from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import pytest

from mmdb_images.appctx import ImageCacheContext
from mmdb_images.settings.manager import ImageCacheConfig


class StubTransport:
    def __init__(self, payload: bytes):
        self.payload = payload
        self.calls = 0

    def fetch(self, url: str, cancel_event: threading.Event | None = None) -> bytes:
        self.calls += 1
        return self.payload


@pytest.fixture()
def context(tmp_path: Path, png_bytes):
    config = ImageCacheConfig(
        max_total_cost=10_000,
        max_entry_count=5,
        disk_directory=tmp_path / "images",
        disk_retention=timedelta(days=7),
        timeout_sec=5.0,
        workers=2,
    )
    ctx = ImageCacheContext(config=config, transport=StubTransport(png_bytes(10, 10)))
    yield ctx
    ctx.close()


class TestImageCacheContext:
    def test_wires_configured_limits(self, context):
        assert context.memory.max_total_cost == 10_000
        assert context.memory.max_entry_count == 5
        assert context.disk.cache_dir == context.config.disk_directory

    def test_memory_pressure_signal_reaches_cache(self, context):
        context.cache.image("https://example/a.jpg").result(timeout=5)
        assert context.memory.count == 1

        context.memory_pressure()

        assert context.memory.count == 0
        assert context.disk.flush(timeout=5)
        assert context.cache.cached("https://example/a.jpg")

    def test_background_signal_is_non_blocking(self, context):
        context.entered_background()
        assert context.disk.flush(timeout=5)

    def test_prefetcher_shares_the_cache(self, context):
        context.prefetcher.update_visible_window(["https://example/b.jpg"])
        handle = context.prefetcher.handle_for("https://example/b.jpg")
        if handle is not None:
            handle.result(timeout=5)
        assert context.transport.calls == 1
