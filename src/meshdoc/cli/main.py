#!/usr/bin/env python3
"""
meshdoc - OpenAPI document CLI

Generates the OpenAPI document of a mesh from a registry snapshot file or a
running gateway, and lists the routes the document is built from.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import click
from rich import box
from rich.console import Console
from rich.table import Table

from meshdoc import __version__
from meshdoc.core.config import OpenAPISettings, load_settings
from meshdoc.core.exceptions import MeshDocError
from meshdoc.core.generator import OpenAPIGenerator, dumps
from meshdoc.core.logging_config import setup_logging
from meshdoc.core.path_builder import format_param_url, normalize_path
from meshdoc.core.registry import GatewayRegistry, ServiceRegistry, StaticRegistry

logger = logging.getLogger(__name__)

console = Console()

DEFAULT_TIMEOUT = 10.0


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _source_options(command: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that reads the mesh."""
    options = [
        click.option(
            "--snapshot",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="Registry snapshot file (YAML or JSON).",
        ),
        click.option(
            "--registry-url",
            envvar="MESHDOC_REGISTRY_URL",
            help="Base URL of a gateway exposing the service bus.",
        ),
        click.option(
            "--api-key",
            envvar="MESHDOC_API_KEY",
            help="API key sent to the gateway.",
        ),
        click.option(
            "--timeout",
            default=DEFAULT_TIMEOUT,
            type=float,
            show_default=True,
            help="Gateway request timeout in seconds.",
        ),
        click.option(
            "--config",
            "config_file",
            type=click.Path(exists=True, dir_okay=False),
            help="Settings file (YAML or JSON).",
        ),
        click.option(
            "--only-local",
            is_flag=True,
            help="Document locally hosted services only.",
        ),
    ]
    for option in reversed(options):
        command = option(command)
    return command


def _build_registry(
    snapshot: Optional[Path],
    registry_url: Optional[str],
    api_key: Optional[str],
    timeout: float,
) -> ServiceRegistry:
    if snapshot and registry_url:
        raise click.UsageError("Use either --snapshot or --registry-url, not both")
    if snapshot:
        return StaticRegistry.from_file(snapshot)
    if registry_url:
        return GatewayRegistry(registry_url, timeout=timeout, api_key=api_key)
    raise click.UsageError("One of --snapshot or --registry-url is required")


def _build_generator(
    snapshot: Optional[Path],
    registry_url: Optional[str],
    api_key: Optional[str],
    timeout: float,
    config_file: Optional[str],
    only_local: bool,
) -> OpenAPIGenerator:
    settings: OpenAPISettings = load_settings(config_file, overrides={"only_local": True if only_local else None})
    registry = _build_registry(snapshot, registry_url, api_key, timeout)
    return OpenAPIGenerator(registry, settings)


# ============================================================================
# CLI Group
# ============================================================================


@click.group()
@click.version_option(__version__, prog_name="meshdoc")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log verbosity (logs go to stderr as JSON).",
)
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write JSON logs to this file.")
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_file: Optional[str]):
    """
    meshdoc - OpenAPI documents for a microservice mesh

    Reads the routes, aliases and parameter schemas published by the mesh and
    renders them as an OpenAPI 3.0.3 document.
    """
    ctx.ensure_object(dict)
    setup_logging(name="meshdoc", log_file=log_file, level=log_level, enable_file=bool(log_file))


@cli.command("generate")
@_source_options
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the document to this file instead of stdout.",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "yaml"]),
    default="json",
    show_default=True,
    help="Document format.",
)
def generate(
    snapshot: Optional[Path],
    registry_url: Optional[str],
    api_key: Optional[str],
    timeout: float,
    config_file: Optional[str],
    only_local: bool,
    output: Optional[Path],
    fmt: str,
):
    """Generate the OpenAPI document."""
    try:
        generator = _build_generator(snapshot, registry_url, api_key, timeout, config_file, only_local)
        doc = generator.generate_sync()
    except MeshDocError as exc:
        _cli_fail(exc)
        return

    text = dumps(doc, fmt)
    if output is None:
        click.echo(text)
        return

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text if text.endswith("\n") else text + "\n", encoding="utf-8")
    except OSError as exc:
        _cli_fail(exc)
        return
    console.print(
        f"[bold green]✓[/] Wrote {len(doc.get('paths', {}))} paths to [cyan]{output}[/]",
        highlight=False,
    )


@cli.command("routes")
@_source_options
def routes(
    snapshot: Optional[Path],
    registry_url: Optional[str],
    api_key: Optional[str],
    timeout: float,
    config_file: Optional[str],
    only_local: bool,
):
    """List the routes the document is built from."""
    try:
        generator = _build_generator(snapshot, registry_url, api_key, timeout, config_file, only_local)
        table_data = asyncio.run(generator.collect_routes())
    except MeshDocError as exc:
        _cli_fail(exc)
        return

    if not table_data:
        console.print("[yellow]No routes found[/]")
        return

    table = Table(title="Gateway Routes", box=box.ROUNDED)
    table.add_column("Method", style="cyan", no_wrap=True)
    table.add_column("Path", style="green", overflow="fold")
    table.add_column("Action", overflow="fold")
    table.add_column("Auto", justify="center")

    for action, entry in table_data.items():
        for occurrence in entry.paths:
            path = format_param_url(normalize_path(f"{occurrence.base}/{occurrence.sub_path}"))
            table.add_row(
                occurrence.method.upper(),
                path,
                action,
                "yes" if occurrence.auto_aliases else "",
            )
    console.print(table)


# ============================================================================
# Main Entry Point
# ============================================================================


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
