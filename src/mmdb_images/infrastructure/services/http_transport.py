"""HTTP transport that fetches raw image bytes with ``requests``."""

from __future__ import annotations

import logging
import threading

import requests

from mmdb_images.config import HTTP_CHUNK_SIZE, HTTP_TIMEOUT_SEC, HTTP_USER_AGENT
from mmdb_images.errors import FetchCancelled, TransportError

LOGGER = logging.getLogger(__name__)


class HttpTransport:
    """Stream image bodies over HTTP(S), honouring a cooperative cancel token.

    Timeouts, connection failures and non-2xx responses are raised as
    :class:`TransportError`; the cache never retries on its own.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SEC,
        chunk_size: int = HTTP_CHUNK_SIZE,
    ):
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", HTTP_USER_AGENT)
        self._timeout = timeout
        self._chunk_size = chunk_size

    def fetch(self, url: str, cancel_event: threading.Event | None = None) -> bytes:
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelled(url)
        try:
            with self._session.get(url, stream=True, timeout=self._timeout) as response:
                if not 200 <= response.status_code < 300:
                    raise TransportError(
                        f"HTTP {response.status_code} for {url}",
                        url=url,
                        status_code=response.status_code,
                    )
                chunks: list[bytes] = []
                for chunk in response.iter_content(chunk_size=self._chunk_size):
                    if cancel_event is not None and cancel_event.is_set():
                        LOGGER.debug("Transfer of %s cancelled", url)
                        raise FetchCancelled(url)
                    if chunk:
                        chunks.append(chunk)
        except requests.Timeout as exc:
            raise TransportError(f"Timed out fetching {url}", url=url) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Request for {url} failed: {exc}", url=url) from exc

        data = b"".join(chunks)
        if not data:
            raise TransportError(f"Empty response body for {url}", url=url)
        return data

    def close(self) -> None:
        if self._owns_session:
            self._session.close()
