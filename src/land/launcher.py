from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence

from land.models import LaunchPlan, ModuleTarget
from land.url_utils import join_url
from land.utils import unique_ordered

PERMISSION_FLAGS = frozenset(
    {
        "-A",
        "--allow-all",
        "--allow-env",
        "--allow-hrtime",
        "--allow-net",
        "--allow-plugin",
        "--allow-read",
        "--allow-run",
        "--allow-write",
    }
)
RUNTIME_SWITCHES = frozenset({"-r", "--reload", "--no-check"})
LOCATION_FLAG = "--location"
DEFAULT_PERMISSION = "--prompt"


@dataclass
class FlagSplit:
    permission: list[str] = field(default_factory=list)
    runtime: list[str] = field(default_factory=list)
    app: list[str] = field(default_factory=list)


def split_flags(tokens: Sequence[str]) -> FlagSplit:
    """Sort CLI tokens into permission, runtime and application arguments.

    Application arguments keep their relative order so ``--port 8080`` stays
    together. ``--location`` takes its value from ``=`` or the next token.
    """
    split = FlagSplit()
    items = list(tokens)
    idx = 0
    while idx < len(items):
        token = items[idx]
        idx += 1
        if not token.startswith("-") or token == "-":
            split.app.append(token)
            continue

        key, has_value, value = token.partition("=")
        if key in PERMISSION_FLAGS:
            split.permission.append(token)
        elif key in RUNTIME_SWITCHES and not has_value:
            split.runtime.append(key)
        elif key == LOCATION_FLAG:
            if not has_value and idx < len(items):
                value = items[idx]
                idx += 1
            if value:
                split.runtime.append(f"{LOCATION_FLAG}={value}")
        else:
            split.app.append(token)
    return split


def build_launch_plan(
    target: ModuleTarget,
    tokens: Sequence[str] = (),
    *,
    module_url: str,
    runtime: str = "deno",
    default_location: str = "http://0.0.0.0",
    env: Mapping[str, str] | None = None,
) -> LaunchPlan:
    split = split_flags(tokens)

    permissions = unique_ordered([*split.permission, *target.permissions])
    if not permissions:
        permissions = [DEFAULT_PERMISSION]

    runtime_flags = list(split.runtime)
    if not any(flag.startswith(f"{LOCATION_FLAG}=") for flag in runtime_flags):
        runtime_flags.append(f"{LOCATION_FLAG}={default_location}")

    base = join_url(module_url, f"{target.module}@{target.version}")
    if target.import_map is not None:
        runtime_flags.append(f"--import-map={join_url(base, target.import_map)}")

    return LaunchPlan(
        command=runtime,
        args=[
            "run",
            "--unstable",
            *runtime_flags,
            *permissions,
            join_url(base, target.entry_file),
            *split.app,
        ],
        env=dict(env or {}),
    )


class Launcher(Protocol):
    def launch(self, plan: LaunchPlan) -> int:
        ...


@dataclass
class SubprocessLauncher:
    inherit_env: bool = True

    def launch(self, plan: LaunchPlan) -> int:
        env = os.environ.copy() if self.inherit_env else {}
        env.update(plan.env)
        completed = subprocess.run(plan.argv, env=env, check=False)
        return completed.returncode
