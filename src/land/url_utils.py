from __future__ import annotations

from urllib.parse import urlsplit

LOOPBACK_HOSTS = frozenset({"localhost", "0.0.0.0", "127.0.0.1"})


def is_loopback(url: str) -> bool:
    return (urlsplit(url).hostname or "") in LOOPBACK_HOSTS


def join_url(base: str, *parts: str) -> str:
    segments = [base.rstrip("/")]
    segments.extend(part.strip("/") for part in parts if part)
    return "/".join(segments)
