from __future__ import annotations

import threading
from dataclasses import dataclass

from land.config import AppConfig
from land.errors import HttpStatusError, ModuleNotFound, VersionNotFound
from land.fetchers.cache import ContentCache
from land.fetchers.http import Transport
from land.manifest import (
    find_first_file,
    parse_directory_listing,
    parse_permissions,
    parse_versions_manifest,
    select_entry_file,
    select_import_map,
)
from land.models import DirectoryEntry, ModuleTarget, Resolution, VersionManifest
from land.reporting.logging import EventLog, null_log
from land.url_utils import join_url
from land.versions import resolve_version

PERMISSIONS_CANDIDATES = ("PERMISSIONS", "PERMISSIONS.txt")


def parse_module_ref(ref: str) -> tuple[str, str | None]:
    """Split ``name@spec`` into its parts; the spec is ``None`` when omitted."""
    module, _, spec = ref.strip().partition("@")
    if not module:
        raise ValueError(f"Invalid module reference: {ref!r}")
    return module, spec or None


@dataclass
class RegistryClient:
    cache: ContentCache
    cdn_url: str = "https://cdn.deno.land"
    module_url: str = "https://deno.land/x"
    log: EventLog = null_log

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        transport: Transport | None = None,
        log: EventLog | None = None,
    ) -> "RegistryClient":
        cache = ContentCache.from_config(config.cache, transport=transport, log=log)
        return cls(
            cache=cache,
            cdn_url=config.registry.cdn_url,
            module_url=config.registry.module_url,
            log=log or null_log,
        )

    def versions_url(self, module: str) -> str:
        return join_url(self.cdn_url, module, "meta", "versions.json")

    def meta_url(self, module: str, version: str) -> str:
        return join_url(self.cdn_url, module, "versions", version, "meta", "meta.json")

    def raw_url(self, module: str, version: str, filename: str) -> str:
        return join_url(self.cdn_url, module, "versions", version, "raw", filename)

    def module_file_url(self, module: str, version: str, filename: str) -> str:
        return join_url(self.module_url, f"{module}@{version}", filename)

    def fetch_versions(self, module: str, cancel: threading.Event | None = None) -> VersionManifest:
        url = self.versions_url(module)
        try:
            fetched = self.cache.fetch_live(url, cancel=cancel)
        except HttpStatusError as exc:
            if exc.status_code == 404:
                raise ModuleNotFound(module) from exc
            raise
        return parse_versions_manifest(fetched.content)

    def resolve(
        self,
        module: str,
        spec: str | None = None,
        cancel: threading.Event | None = None,
    ) -> Resolution:
        manifest = self.fetch_versions(module, cancel=cancel)
        try:
            version = resolve_version(spec, manifest.latest, manifest.versions)
        except VersionNotFound as exc:
            raise VersionNotFound(exc.spec, module) from exc

        resolution = Resolution(module=module, requested=spec, version=version)
        if resolution.adjusted:
            self.log(
                "version_resolved",
                {"module": module, "requested": spec, "version": version},
            )
        return resolution

    def fetch_listing(
        self,
        module: str,
        version: str,
        force_refresh: bool = False,
        cancel: threading.Event | None = None,
    ) -> list[DirectoryEntry]:
        url = self.meta_url(module, version)
        try:
            fetched = self.cache.fetch_cached(url, force_refresh=force_refresh, cancel=cancel)
        except HttpStatusError as exc:
            if exc.status_code == 404:
                raise ModuleNotFound(module) from exc
            raise
        return parse_directory_listing(fetched.content)

    def fetch_permissions(
        self,
        module: str,
        version: str,
        listing: list[DirectoryEntry],
        force_refresh: bool = False,
        cancel: threading.Event | None = None,
    ) -> list[str]:
        filename = find_first_file(listing, PERMISSIONS_CANDIDATES)
        if filename is None:
            return []
        fetched = self.cache.fetch_cached(
            self.raw_url(module, version, filename),
            force_refresh=force_refresh,
            cancel=cancel,
        )
        return parse_permissions(fetched.content.decode("utf-8", errors="replace"))

    def locate(
        self,
        module: str,
        spec: str | None = None,
        force_refresh: bool = False,
        cancel: threading.Event | None = None,
    ) -> ModuleTarget:
        resolution = self.resolve(module, spec, cancel=cancel)
        version = resolution.version
        listing = self.fetch_listing(module, version, force_refresh=force_refresh, cancel=cancel)
        return ModuleTarget(
            module=module,
            version=version,
            entry_file=select_entry_file(listing, module, version),
            import_map=select_import_map(listing),
            permissions=self.fetch_permissions(
                module, version, listing, force_refresh=force_refresh, cancel=cancel
            ),
        )
