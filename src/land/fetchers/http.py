from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import httpx

from land import __version__
from land.errors import TransportError

USER_AGENT = f"land/{__version__}"


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type") or None


class Transport(Protocol):
    def get(self, url: str) -> TransportResponse:
        ...


@dataclass
class HttpxTransport:
    timeout: float = 20.0
    user_agent: str = USER_AGENT

    def get(self, url: str) -> TransportResponse:
        try:
            with httpx.Client(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            ) as client:
                response = client.get(url)
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}", url=url) from exc
        return TransportResponse(
            status_code=response.status_code,
            reason=response.reason_phrase,
            headers={key.lower(): value for key, value in response.headers.items()},
            content=response.content,
        )
