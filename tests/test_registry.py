from __future__ import annotations

import json
from pathlib import Path

import pytest

from land.errors import CommandNotFound, HttpStatusError, ModuleNotFound, VersionNotFound
from land.fetchers.cache import ContentCache
from land.fetchers.http import TransportResponse
from land.registry import RegistryClient, parse_module_ref

CDN = "https://cdn.example.com"


class RouteTransport:
    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = routes
        self.calls: list[str] = []

    def get(self, url: str) -> TransportResponse:
        self.calls.append(url)
        if url not in self.routes:
            return TransportResponse(status_code=404, reason="Not Found")
        body = self.routes[url]
        if isinstance(body, str):
            return TransportResponse(status_code=200, reason="OK", headers={"content-type": "text/plain"}, content=body.encode())
        return TransportResponse(
            status_code=200,
            reason="OK",
            headers={"content-type": "application/json"},
            content=json.dumps(body).encode(),
        )


def _routes() -> dict[str, object]:
    return {
        f"{CDN}/oak/meta/versions.json": {"latest": "v10.1.0", "versions": ["v10.1.0", "v10.0.0", "v9.0.0"]},
        f"{CDN}/oak/versions/v10.1.0/meta/meta.json": {
            "directory_listing": [
                {"type": "file", "path": "/mod.ts"},
                {"type": "file", "path": "/import_map.json"},
                {"type": "file", "path": "/PERMISSIONS"},
            ]
        },
        f"{CDN}/oak/versions/v10.1.0/raw/PERMISSIONS": "# net only\n--allow-net\n",
        f"{CDN}/bare/meta/versions.json": {"latest": "1.0.0", "versions": ["1.0.0"]},
        f"{CDN}/bare/versions/1.0.0/meta/meta.json": {"directory_listing": [{"type": "file", "path": "/README.md"}]},
    }


def _client(tmp_path: Path, transport: RouteTransport) -> tuple[RegistryClient, list[tuple[str, dict]]]:
    events: list[tuple[str, dict]] = []
    cache = ContentCache(root=tmp_path, transport=transport, retry_times=1)
    client = RegistryClient(
        cache=cache,
        cdn_url=CDN,
        module_url="https://x.example.com",
        log=lambda event, payload: events.append((event, dict(payload))),
    )
    return client, events


def test_parse_module_ref() -> None:
    assert parse_module_ref("oak@v10") == ("oak", "v10")
    assert parse_module_ref("oak") == ("oak", None)
    assert parse_module_ref("oak@") == ("oak", None)
    with pytest.raises(ValueError):
        parse_module_ref("@1.0.0")


def test_urls(tmp_path: Path) -> None:
    client, _ = _client(tmp_path, RouteTransport({}))
    assert client.versions_url("oak") == f"{CDN}/oak/meta/versions.json"
    assert client.meta_url("oak", "v1") == f"{CDN}/oak/versions/v1/meta/meta.json"
    assert client.raw_url("oak", "v1", "PERMISSIONS") == f"{CDN}/oak/versions/v1/raw/PERMISSIONS"
    assert client.module_file_url("oak", "v1", "mod.ts") == "https://x.example.com/oak@v1/mod.ts"


def test_resolve_logs_adjusted_version(tmp_path: Path) -> None:
    client, events = _client(tmp_path, RouteTransport(_routes()))

    resolution = client.resolve("oak", "10")

    assert resolution.version == "v10.1.0"
    assert resolution.adjusted is True
    assert events[-1] == ("version_resolved", {"module": "oak", "requested": "10", "version": "v10.1.0"})


def test_resolve_latest_is_not_adjusted(tmp_path: Path) -> None:
    client, events = _client(tmp_path, RouteTransport(_routes()))

    resolution = client.resolve("oak")

    assert resolution.version == "v10.1.0"
    assert resolution.adjusted is False
    assert not [event for event, _ in events if event == "version_resolved"]


def test_versions_document_is_never_cached(tmp_path: Path) -> None:
    transport = RouteTransport(_routes())
    client, _ = _client(tmp_path, transport)

    client.resolve("oak")
    client.resolve("oak")

    assert transport.calls.count(f"{CDN}/oak/meta/versions.json") == 2
    assert list(tmp_path.rglob("*")) == []


def test_unknown_module(tmp_path: Path) -> None:
    client, _ = _client(tmp_path, RouteTransport(_routes()))
    with pytest.raises(ModuleNotFound, match="missing"):
        client.resolve("missing")


def test_unknown_version_carries_module(tmp_path: Path) -> None:
    client, _ = _client(tmp_path, RouteTransport(_routes()))
    with pytest.raises(VersionNotFound) as excinfo:
        client.resolve("oak", "11")
    assert excinfo.value.module == "oak"
    assert excinfo.value.spec == "11"


def test_locate_builds_target_and_caches_listing(tmp_path: Path) -> None:
    transport = RouteTransport(_routes())
    client, _ = _client(tmp_path, transport)

    target = client.locate("oak", "v10.1")
    again = client.locate("oak", "v10.1")

    assert target == again
    assert target.version == "v10.1.0"
    assert target.entry_file == "mod.ts"
    assert target.import_map == "import_map.json"
    assert target.permissions == ["--allow-net"]
    assert transport.calls.count(f"{CDN}/oak/versions/v10.1.0/meta/meta.json") == 1
    assert transport.calls.count(f"{CDN}/oak/versions/v10.1.0/raw/PERMISSIONS") == 1


def test_locate_force_refresh_refetches_listing(tmp_path: Path) -> None:
    transport = RouteTransport(_routes())
    client, _ = _client(tmp_path, transport)

    client.locate("oak")
    client.locate("oak", force_refresh=True)

    assert transport.calls.count(f"{CDN}/oak/versions/v10.1.0/meta/meta.json") == 2


def test_locate_without_entry_file(tmp_path: Path) -> None:
    client, _ = _client(tmp_path, RouteTransport(_routes()))
    with pytest.raises(CommandNotFound):
        client.locate("bare")


def test_permissions_absent_from_listing(tmp_path: Path) -> None:
    routes = _routes()
    routes[f"{CDN}/bare/versions/1.0.0/meta/meta.json"] = {"directory_listing": [{"type": "file", "path": "/cli.ts"}]}
    transport = RouteTransport(routes)
    client, _ = _client(tmp_path, transport)

    target = client.locate("bare")

    assert target.permissions == []
    assert target.import_map is None
    assert not [url for url in transport.calls if "/raw/" in url]


def test_server_error_is_not_module_not_found(tmp_path: Path) -> None:
    class BrokenTransport:
        def get(self, url: str) -> TransportResponse:
            return TransportResponse(status_code=500, reason="Internal Server Error")

    cache = ContentCache(root=tmp_path, transport=BrokenTransport(), retry_times=2)
    client = RegistryClient(cache=cache, cdn_url=CDN)
    with pytest.raises(HttpStatusError) as excinfo:
        client.resolve("oak")
    assert excinfo.value.status_code == 500
