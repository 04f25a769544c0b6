from __future__ import annotations

from typing import Sequence

from land.errors import VersionNotFound


def toggle_v_prefix(value: str) -> str:
    """Drop a leading ``v`` if present, otherwise add one."""
    if value.startswith("v"):
        return value[1:]
    return f"v{value}"


def resolve_version(
    spec: str | None,
    latest: str,
    versions: Sequence[str],
) -> str:
    """Map a requested version spec onto one published version.

    Resolution short-circuits in this order: empty spec gives ``latest``,
    then an exact match, then the exact match of the spec with its leading
    ``v`` toggled, then the first entry in manifest order that shares a
    prefix with the spec (tolerating a leading ``v`` on either side).
    No semantic-version ordering is applied; list order decides ties.
    """
    if not spec:
        return latest

    if spec in versions:
        return spec

    toggled = toggle_v_prefix(spec)
    if toggled in versions:
        return toggled

    for ver in versions:
        if not ver:
            continue
        if ver.startswith(spec) or ver.startswith(toggled) or spec.startswith(toggle_v_prefix(ver)):
            return ver

    raise VersionNotFound(spec)
