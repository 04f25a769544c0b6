from __future__ import annotations

import json

import pytest

from land.errors import CommandNotFound, ManifestError
from land.manifest import (
    ENTRY_CANDIDATES,
    parse_directory_listing,
    parse_permissions,
    parse_versions_manifest,
    select_entry_file,
    select_import_map,
)
from land.models import DirectoryEntry


def _files(*names: str) -> list[DirectoryEntry]:
    return [DirectoryEntry(type="file", path=f"/{name}") for name in names]


def test_entry_candidates_order() -> None:
    assert ENTRY_CANDIDATES[:5] == ("cli.ts", "cli.tsx", "cli.js", "cli.jsx", "main.ts")
    assert ENTRY_CANDIDATES[-1] == "mod.jsx"


def test_parse_versions_manifest() -> None:
    manifest = parse_versions_manifest(json.dumps({"latest": "v2.0.0", "versions": ["v2.0.0", "v1.0.0"]}))
    assert manifest.latest == "v2.0.0"
    assert manifest.versions == ["v2.0.0", "v1.0.0"]


@pytest.mark.parametrize(
    "raw",
    [
        b"<html>not json</html>",
        json.dumps([]),
        json.dumps({"versions": ["1.0.0"]}),
        json.dumps({"latest": "1.0.0", "versions": "1.0.0"}),
        json.dumps({"latest": "1.0.0", "versions": [1, 2]}),
    ],
)
def test_parse_versions_manifest_rejects_bad_shape(raw: str | bytes) -> None:
    with pytest.raises(ManifestError):
        parse_versions_manifest(raw)


def test_parse_directory_listing() -> None:
    raw = json.dumps(
        {
            "uploaded_at": "2021-01-01T00:00:00Z",
            "directory_listing": [
                {"type": "dir", "path": "", "size": 10},
                {"type": "file", "path": "/mod.ts", "size": 4},
            ],
        }
    )
    listing = parse_directory_listing(raw)
    assert listing == [DirectoryEntry(type="dir", path=""), DirectoryEntry(type="file", path="/mod.ts")]


def test_parse_directory_listing_rejects_missing_fields() -> None:
    with pytest.raises(ManifestError):
        parse_directory_listing(json.dumps({"directory_listing": [{"type": "file"}]}))
    with pytest.raises(ManifestError):
        parse_directory_listing(json.dumps({}))


def test_select_entry_file_prefers_cli() -> None:
    listing = _files("mod.ts", "main.js", "cli.js")
    assert select_entry_file(listing) == "cli.js"


def test_select_entry_file_prefers_ts_within_basename() -> None:
    assert select_entry_file(_files("mod.js", "mod.ts")) == "mod.ts"


def test_select_entry_file_ignores_directories() -> None:
    listing = [DirectoryEntry(type="dir", path="/cli.ts"), *_files("mod.ts")]
    assert select_entry_file(listing) == "mod.ts"


def test_select_entry_file_missing() -> None:
    with pytest.raises(CommandNotFound) as excinfo:
        select_entry_file(_files("README.md"), "oak", "v1.0.0")
    assert "oak@v1.0.0" in str(excinfo.value)


def test_select_import_map() -> None:
    assert select_import_map(_files("mod.ts", "importmap.json", "import-map.json")) == "import-map.json"
    assert select_import_map(_files("mod.ts")) is None


def test_parse_permissions() -> None:
    text = "# needs network\n--allow-net\n\n  --allow-read  \n#--allow-write\n"
    assert parse_permissions(text) == ["--allow-net", "--allow-read"]
