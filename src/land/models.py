from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class CacheKey:
    directory: Path
    filename: str

    @property
    def content_path(self) -> Path:
        return self.directory / self.filename

    @property
    def metadata_path(self) -> Path:
        return self.directory / f"{self.filename}.metadata.json"

    @property
    def lock_path(self) -> Path:
        return self.directory / f"{self.filename}.lock"


@dataclass(frozen=True)
class CacheMetadata:
    headers: dict[str, str]
    url: str

    def to_dict(self) -> dict[str, object]:
        return {"headers": dict(self.headers), "url": self.url}


@dataclass(frozen=True)
class CachedContent:
    content: bytes
    content_type: str | None
    from_cache: bool = False


@dataclass(frozen=True)
class VersionManifest:
    latest: str
    versions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DirectoryEntry:
    type: str
    path: str

    @property
    def is_file(self) -> bool:
        return self.type == "file"


@dataclass(frozen=True)
class Resolution:
    module: str
    requested: str | None
    version: str

    @property
    def adjusted(self) -> bool:
        return bool(self.requested) and self.requested != self.version


@dataclass(frozen=True)
class ModuleTarget:
    module: str
    version: str
    entry_file: str
    import_map: str | None = None
    permissions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LaunchPlan:
    command: str
    args: list[str]
    env: dict[str, str] = field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]
