"""HTTP transport and the on-disk content cache."""

from __future__ import annotations

__all__ = [
    "ContentCache",
    "HttpxTransport",
    "Transport",
    "TransportResponse",
    "build_cache_key",
    "parse_metadata",
]

from land.fetchers.cache import ContentCache, build_cache_key, parse_metadata
from land.fetchers.http import HttpxTransport, Transport, TransportResponse
