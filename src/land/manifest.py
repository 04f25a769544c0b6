from __future__ import annotations

import json
from typing import Any, Iterable, Sequence

from land.errors import CommandNotFound, ManifestError
from land.models import DirectoryEntry, VersionManifest

ENTRY_BASENAMES = ("cli", "main", "mod")
SOURCE_EXTENSIONS = ("ts", "tsx", "js", "jsx")
ENTRY_CANDIDATES = tuple(
    f"{name}.{ext}" for name in ENTRY_BASENAMES for ext in SOURCE_EXTENSIONS
)
IMPORT_MAP_CANDIDATES = tuple(
    f"{name}.json" for name in ("import_map", "import-map", "importMap", "importmap")
)


def _load_object(raw: bytes | str, document: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ManifestError(f"{document}: invalid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{document}: expected a JSON object")
    return data


def parse_versions_manifest(raw: bytes | str) -> VersionManifest:
    data = _load_object(raw, "versions.json")
    latest = data.get("latest")
    versions = data.get("versions")
    if not isinstance(latest, str):
        raise ManifestError("versions.json: 'latest' must be a string")
    if not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
        raise ManifestError("versions.json: 'versions' must be a list of strings")
    return VersionManifest(latest=latest, versions=list(versions))


def parse_directory_listing(raw: bytes | str) -> list[DirectoryEntry]:
    data = _load_object(raw, "meta.json")
    listing = data.get("directory_listing")
    if not isinstance(listing, list):
        raise ManifestError("meta.json: 'directory_listing' must be a list")

    entries: list[DirectoryEntry] = []
    for idx, item in enumerate(listing):
        if not isinstance(item, dict):
            raise ManifestError(f"meta.json: directory_listing[{idx}] must be an object")
        entry_type = item.get("type")
        path = item.get("path")
        if not isinstance(entry_type, str) or not isinstance(path, str):
            raise ManifestError(f"meta.json: directory_listing[{idx}] needs string 'type' and 'path'")
        entries.append(DirectoryEntry(type=entry_type, path=path))
    return entries


def find_first_file(listing: Iterable[DirectoryEntry], candidates: Sequence[str]) -> str | None:
    files = {entry.path for entry in listing if entry.is_file}
    for name in candidates:
        if f"/{name}" in files:
            return name
    return None


def select_entry_file(
    listing: Iterable[DirectoryEntry],
    module: str | None = None,
    version: str | None = None,
) -> str:
    name = find_first_file(listing, ENTRY_CANDIDATES)
    if name is None:
        raise CommandNotFound(module, version)
    return name


def select_import_map(listing: Iterable[DirectoryEntry]) -> str | None:
    return find_first_file(listing, IMPORT_MAP_CANDIDATES)


def parse_permissions(text: str) -> list[str]:
    """One flag per line; blank lines and ``#`` comments are skipped."""
    flags: list[str] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        flags.append(line)
    return flags
