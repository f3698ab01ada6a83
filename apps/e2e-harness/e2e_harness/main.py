"""CLI entrypoint for the storefront end-to-end harness."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError

from .browser import PlaywrightSessionFactory
from .config import HarnessConfig, load_config
from .logging_utils import configure_logging
from .output_config import get_output_format, log_format_for
from .registry import DEFAULT_MODULES, ScenarioRegistry
from .runner import ScenarioRunner

app = typer.Typer(help="Run storefront end-to-end scenarios against a deployed environment.")


def _default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _load_config(config_file: Optional[Path], overrides: dict[str, Any]) -> HarnessConfig:
    try:
        return load_config(config_file, overrides)
    except (ValidationError, ValueError, FileNotFoundError) as exc:
        raise typer.BadParameter(str(exc)) from exc


def _registry(config: HarnessConfig, modules: list[str], files: list[Path]) -> ScenarioRegistry:
    # bundled scenarios only when nothing else was asked for
    if not modules and not files:
        modules = list(DEFAULT_MODULES)
    return ScenarioRegistry(config, modules=modules, files=files)


@app.command("run")
def run_scenarios(
    scenario: list[str] = typer.Option([], "--scenario", "-s", help="Scenario name to run (repeatable)."),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Only run scenarios carrying this tag."),
    file: list[Path] = typer.Option([], "--file", "-f", exists=True, readable=True, help="YAML scenario file."),
    module: list[str] = typer.Option([], "--module", "-m", help="Python module exposing scenarios(config)."),
    config_file: Optional[Path] = typer.Option(None, "--config", exists=True, readable=True, help="YAML config."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Storefront base URL."),
    store: Optional[str] = typer.Option(None, "--store", help="Store slug used in routes."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Root directory for run artifacts."),
    run_id: Optional[str] = typer.Option(None, "--run-id", help="Run identifier (defaults to a UTC timestamp)."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Concurrent scenarios."),
    headless: Optional[bool] = typer.Option(None, "--headless/--headed", help="Browser visibility."),
    browser: Optional[str] = typer.Option(None, "--browser", help="chromium, firefox or webkit."),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        help="Console output: auto, rich, plain or json (overrides CONSOLE_OUTPUT_FORMAT).",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Harness log level."),
) -> None:
    """Run scenarios and exit non-zero when any of them failed."""

    output = get_output_format(output_format)
    configure_logging(log_level, log_format_for(output))
    config = _load_config(
        config_file,
        {
            "base_url": base_url,
            "store_slug": store,
            "results_dir": output_dir,
            "workers": workers,
            "headless": headless,
            "browser": browser,
        },
    )

    registry = _registry(config, module, file)
    try:
        selected = registry.select(names=scenario, tags=tag)
    except KeyError as exc:
        raise typer.BadParameter(exc.args[0]) from exc
    if not selected:
        typer.secho("No scenarios matched the selection", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=0)

    runner = ScenarioRunner(
        config=config,
        run_id=run_id or _default_run_id(),
        sessions=PlaywrightSessionFactory(config),
        output_format=output,
    )
    summary = runner.run_sync(selected)
    raise typer.Exit(code=summary.exit_code)


@app.command("list")
def list_scenarios(
    tag: list[str] = typer.Option([], "--tag", "-t", help="Only list scenarios carrying this tag."),
    file: list[Path] = typer.Option([], "--file", "-f", exists=True, readable=True, help="YAML scenario file."),
    module: list[str] = typer.Option([], "--module", "-m", help="Python module exposing scenarios(config)."),
    config_file: Optional[Path] = typer.Option(None, "--config", exists=True, readable=True, help="YAML config."),
) -> None:
    """List registered scenarios with their tags."""

    config = _load_config(config_file, {})
    for item in _registry(config, module, file).select(tags=tag):
        tags = f" [{', '.join(item.tags)}]" if item.tags else ""
        typer.echo(f"{item.name}{tags}")
        if item.description:
            typer.secho(f"    {item.description}", fg=typer.colors.BRIGHT_BLACK)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
