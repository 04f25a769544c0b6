"""
Content-addressable on-disk cache for remote downloads.

Layout under the cache root:

    <scheme>/<host>[_PORT<port>]/<sha256(path + query)>
    <scheme>/<host>[_PORT<port>]/<sha256(path + query)>.metadata.json

The first file holds the raw response body, the second the response headers
and the request URL. An entry is only served when both exist and the metadata
validates; anything else is treated as a miss and refetched.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
    wait_none,
)

from land.config import CacheConfig
from land.errors import FetchCancelled, HttpStatusError, MetadataParseError, TransportError
from land.fetchers.http import HttpxTransport, Transport, TransportResponse
from land.models import CacheKey, CachedContent, CacheMetadata
from land.reporting.logging import EventLog, null_log
from land.url_utils import is_loopback

try:  # pragma: no cover - platform specific availability
    import fcntl
except ImportError:  # pragma: no cover - windows
    fcntl = None  # type: ignore[assignment]

DEFAULT_PORTS = {"http": 80, "https": 443}


def build_cache_key(root: Path | str, url: str) -> CacheKey:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if not scheme or not host:
        raise ValueError(f"Cannot build a cache key for {url!r}")

    port = parts.port
    host_dir = host
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        host_dir = f"{host}_PORT{port}"

    path = parts.path or "/"
    search = f"?{parts.query}" if parts.query else ""
    digest = hashlib.sha256((path + search).encode("utf-8")).hexdigest()
    return CacheKey(directory=Path(root) / scheme / host_dir, filename=digest)


def parse_metadata(raw: bytes | str) -> CacheMetadata:
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise MetadataParseError(f"Invalid metadata JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MetadataParseError("Metadata must be a JSON object")

    headers = data.get("headers")
    url = data.get("url")
    if not isinstance(headers, dict):
        raise MetadataParseError("Metadata field 'headers' must be an object")
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in headers.items()):
        raise MetadataParseError("Metadata headers must map strings to strings")
    if not isinstance(url, str):
        raise MetadataParseError("Metadata field 'url' must be a string")
    return CacheMetadata(headers={k.lower(): v for k, v in headers.items()}, url=url)


def _file_mode() -> int:
    # Temp files start out 0600; cached entries follow the umask like a plain open().
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    """Replace ``path`` with ``payload`` via a sibling temp file and rename."""
    with tempfile.NamedTemporaryFile(
        "wb",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        temp_path = Path(handle.name)
        try:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
            os.chmod(handle.name, _file_mode())
        except BaseException:
            handle.close()
            temp_path.unlink(missing_ok=True)
            raise
    try:
        temp_path.replace(path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


@contextmanager
def _locked(path: Path) -> Iterator[None]:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a+b") as handle:
        if fcntl is None:  # pragma: no cover - no locking backend
            yield
            return
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@dataclass
class ContentCache:
    root: Path
    transport: Transport = field(default_factory=HttpxTransport)
    retry_times: int = 3
    retry_backoff: float = 0.0
    retry_backoff_max: float = 8.0
    lock_entries: bool = False
    log: EventLog = null_log
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        if self.retry_times < 1:
            raise ValueError("retry_times must be >= 1")

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        transport: Transport | None = None,
        log: EventLog | None = None,
    ) -> "ContentCache":
        return cls(
            root=config.directory,
            transport=transport or HttpxTransport(timeout=config.timeout),
            retry_times=config.retry_times,
            retry_backoff=config.retry_backoff,
            retry_backoff_max=config.retry_backoff_max,
            lock_entries=config.lock_entries,
            log=log or null_log,
        )

    def fetch_cached(
        self,
        url: str,
        *,
        force_refresh: bool = False,
        retry_times: int | None = None,
        cancel: threading.Event | None = None,
    ) -> CachedContent:
        if is_loopback(url):
            return self.fetch_live(url, retry_times=retry_times, cancel=cancel)

        attempts = self._attempts(retry_times)
        key = build_cache_key(self.root, url)
        lock = _locked(key.lock_path) if self.lock_entries else nullcontext()
        with lock:
            if not force_refresh:
                cached = self._read_entry(key, url)
                if cached is not None:
                    return cached
            self.log("cache_miss", {"url": url, "force_refresh": force_refresh})

            response = self._fetch_with_retry(url, attempts, cancel)
            self._write_entry(key, url, response)
        return CachedContent(content=response.content, content_type=response.content_type)

    def fetch_live(
        self,
        url: str,
        *,
        retry_times: int | None = None,
        cancel: threading.Event | None = None,
    ) -> CachedContent:
        """Fetch with the same retry policy but never read or write the cache."""
        response = self._fetch_with_retry(url, self._attempts(retry_times), cancel)
        return CachedContent(content=response.content, content_type=response.content_type)

    def _attempts(self, retry_times: int | None) -> int:
        attempts = self.retry_times if retry_times is None else retry_times
        if attempts < 1:
            raise ValueError("retry_times must be >= 1")
        return attempts

    def _read_entry(self, key: CacheKey, url: str) -> CachedContent | None:
        if not (key.content_path.is_file() and key.metadata_path.is_file()):
            return None
        content = key.content_path.read_bytes()
        try:
            metadata = parse_metadata(key.metadata_path.read_bytes())
        except MetadataParseError as exc:
            self.log("cache_metadata_invalid", {"url": url, "path": str(key.metadata_path), "error": str(exc)})
            return None
        self.log("cache_hit", {"url": url, "path": str(key.content_path)})
        return CachedContent(
            content=content,
            content_type=metadata.headers.get("content-type") or None,
            from_cache=True,
        )

    def _write_entry(self, key: CacheKey, url: str, response: TransportResponse) -> None:
        key.directory.mkdir(parents=True, exist_ok=True)
        metadata = CacheMetadata(headers=dict(response.headers), url=url)
        # Content first: metadata presence marks the entry as complete.
        _atomic_write_bytes(key.content_path, response.content)
        _atomic_write_bytes(
            key.metadata_path,
            json.dumps(metadata.to_dict(), indent=2).encode("utf-8"),
        )
        self.log("cache_write", {"url": url, "path": str(key.content_path), "bytes": len(response.content)})

    def _fetch_with_retry(
        self,
        url: str,
        attempts: int,
        cancel: threading.Event | None,
    ) -> TransportResponse:
        if cancel is not None and cancel.is_set():
            raise FetchCancelled(f"Fetch cancelled before first attempt: {url}")

        stop: Any = stop_after_attempt(attempts)
        if cancel is not None:
            stop = stop | stop_when_event_set(cancel)
        wait: Any = wait_none()
        if self.retry_backoff > 0:
            wait = wait_exponential(multiplier=self.retry_backoff, max=self.retry_backoff_max)

        made = 0
        last_error: TransportError | None = None

        def _attempt() -> TransportResponse:
            nonlocal made, last_error
            # A cancel that arrives during a backoff wait ends the loop before the next call.
            if cancel is not None and cancel.is_set():
                raise FetchCancelled(f"Fetch cancelled after {made} attempt(s): {url}") from last_error
            made += 1
            try:
                response = self.transport.get(url)
                if response.status_code >= 400:
                    raise HttpStatusError(response.status_code, response.reason, url)
            except TransportError as exc:
                last_error = exc
                self.log(
                    "fetch_attempt_failed",
                    {"url": url, "attempt": made, "max_attempts": attempts, "error": str(exc)},
                )
                raise
            return response

        retryer = Retrying(
            stop=stop,
            wait=wait,
            sleep=self.sleep,
            retry=retry_if_exception_type(TransportError),
            reraise=True,
        )
        try:
            return retryer(_attempt)
        except TransportError as exc:
            if cancel is not None and cancel.is_set() and made < attempts:
                raise FetchCancelled(f"Fetch cancelled after {made} attempt(s): {url}") from exc
            raise
