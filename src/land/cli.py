from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from land.config import AppConfig, load_config
from land.errors import ConfigError, LandError
from land.fetchers.cache import ContentCache
from land.fetchers.http import HttpxTransport
from land.launcher import SubprocessLauncher, build_launch_plan
from land.models import LaunchPlan
from land.registry import RegistryClient, parse_module_ref
from land.reporting.logging import EventLog, log_event, null_log
from land.utils import load_env_file

app = typer.Typer(help="Run modules published on a deno.land-style registry.")

PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}


@dataclass
class CliState:
    config: AppConfig
    log: EventLog

    def transport(self) -> HttpxTransport:
        return HttpxTransport(timeout=self.config.cache.timeout)

    def registry(self) -> RegistryClient:
        return RegistryClient.from_config(self.config, transport=self.transport(), log=self.log)

    def cache(self) -> ContentCache:
        return ContentCache.from_config(self.config.cache, transport=self.transport(), log=self.log)


@app.callback()
def main(
    ctx: typer.Context,
    config: Path = typer.Option(
        Path("land.yaml"), "--config", envvar="LAND_CONFIG", help="Path to land.yaml."
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Emit JSON log events on stderr."),
) -> None:
    """land: resolve, cache and launch registry modules."""
    load_env_file(Path(".env"))
    try:
        loaded = load_config(config)
    except ConfigError as exc:
        typer.secho(f"Invalid configuration: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(1) from exc
    ctx.obj = CliState(config=loaded, log=log_event if verbose else null_log)


def _fail(exc: Exception) -> typer.Exit:
    typer.secho(str(exc), err=True, fg=typer.colors.RED)
    return typer.Exit(1)


def _plan(
    state: CliState,
    ref: str,
    args: list[str],
    force_refresh: bool,
) -> LaunchPlan:
    module, spec = parse_module_ref(ref)
    registry = state.registry()
    target = registry.locate(module, spec, force_refresh=force_refresh)
    if spec and spec != target.version:
        typer.secho(f"Resolved {module}@{spec} to {target.version}", err=True, fg=typer.colors.YELLOW)
    return build_launch_plan(
        target,
        args,
        module_url=state.config.registry.module_url,
        runtime=state.config.launch.runtime,
        default_location=state.config.launch.default_location,
    )


@app.command()
def resolve(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Module reference, e.g. 'oak' or 'oak@v10'."),
) -> None:
    """Print the published version a module reference resolves to."""
    state: CliState = ctx.obj
    try:
        module, spec = parse_module_ref(ref)
        resolution = state.registry().resolve(module, spec)
    except (LandError, ValueError) as exc:
        raise _fail(exc) from exc
    typer.echo(resolution.version)


@app.command()
def fetch(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL to fetch through the cache."),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Ignore any cached entry."),
    retries: Optional[int] = typer.Option(None, "--retries", min=1, help="Maximum attempts."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the body to a file."),
) -> None:
    """Fetch a URL through the content cache."""
    state: CliState = ctx.obj
    try:
        fetched = state.cache().fetch_cached(url, force_refresh=force_refresh, retry_times=retries)
    except (LandError, ValueError) as exc:
        raise _fail(exc) from exc

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(fetched.content)
        typer.echo(f"Written: {output}")
    typer.echo(f"Content-Type: {fetched.content_type or '-'}")
    typer.echo(f"Bytes: {len(fetched.content)}")
    typer.echo(f"Cached: {'yes' if fetched.from_cache else 'no'}")


@app.command(context_settings=PASSTHROUGH)
def plan(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Module reference, e.g. 'oak' or 'oak@v10'."),
    args: Optional[List[str]] = typer.Argument(None, help="Flags and arguments for the module."),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Refetch module metadata."),
) -> None:
    """Print the runtime command line without running it."""
    state: CliState = ctx.obj
    try:
        launch_plan = _plan(state, ref, list(args or []), force_refresh)
    except (LandError, ValueError) as exc:
        raise _fail(exc) from exc
    typer.echo(" ".join(launch_plan.argv))


@app.command(context_settings=PASSTHROUGH)
def run(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Module reference, e.g. 'oak' or 'oak@v10'."),
    args: Optional[List[str]] = typer.Argument(None, help="Flags and arguments for the module."),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Refetch module metadata."),
) -> None:
    """Resolve a module and run its entry file with the runtime."""
    state: CliState = ctx.obj
    try:
        launch_plan = _plan(state, ref, list(args or []), force_refresh)
    except (LandError, ValueError) as exc:
        raise _fail(exc) from exc
    try:
        code = SubprocessLauncher().launch(launch_plan)
    except OSError as exc:
        raise _fail(exc) from exc
    raise typer.Exit(code)


if __name__ == "__main__":
    app()
