from __future__ import annotations


class LandError(RuntimeError):
    """Base class for failures surfaced by land."""


class ConfigError(ValueError):
    pass


class TransportError(LandError):
    """Network failure while fetching a URL."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class HttpStatusError(TransportError):
    """The server answered with a status code >= 400."""

    def __init__(self, status_code: int, reason: str, url: str) -> None:
        status = f"{status_code} {reason}".strip()
        super().__init__(f"{status}: {url}", url=url)
        self.status_code = status_code
        self.reason = reason


class FetchCancelled(LandError):
    pass


class MetadataParseError(LandError):
    """A cache metadata file is unreadable or does not match its schema."""


class ManifestError(LandError):
    """A registry document is not valid JSON or misses a required field."""


class ModuleNotFound(LandError):
    def __init__(self, module: str) -> None:
        super().__init__(f"Module '{module}' not found")
        self.module = module


class VersionNotFound(LandError):
    def __init__(self, spec: str, module: str | None = None) -> None:
        target = f"{module}@{spec}" if module else spec
        super().__init__(f"Version not found: {target}")
        self.spec = spec
        self.module = module


class CommandNotFound(LandError):
    def __init__(self, module: str | None = None, version: str | None = None) -> None:
        detail = f" in {module}@{version}" if module and version else ""
        super().__init__(f"Command not found{detail}")
        self.module = module
        self.version = version
