"""CLI entry point for the tool screenshot pipeline."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from toolshots.models.capture import REGION_ORDER
from toolshots.models.config import PipelineConfig
from toolshots.orchestrator import Orchestrator

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load_config(path: str) -> PipelineConfig:
    try:
        return PipelineConfig.load_or_default(path)
    except ValueError as e:
        console.print(f"[red]Invalid config {path}: {e}[/red]")
        sys.exit(1)


def _make_orchestrator(cfg: PipelineConfig) -> Orchestrator:
    try:
        return Orchestrator(cfg)
    except EnvironmentError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--env-file", default=".env.local", help="dotenv file with Supabase credentials")
def cli(verbose: bool, env_file: str) -> None:
    """Capture, deduplicate and publish tool website screenshots."""
    load_dotenv(env_file)
    load_dotenv()
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default="screenshot-config.json", help="Config file path")
@click.option("--limit", "-n", type=int, envvar="SCREENSHOT_LIMIT", default=None,
              help="Process at most N tools (env: SCREENSHOT_LIMIT)")
def run(config: str, limit: Optional[int]) -> None:
    """Refresh screenshots for every published tool."""
    cfg = _load_config(config)
    orchestrator = _make_orchestrator(cfg)
    batch, report_path = orchestrator.run_batch(limit)

    console.print("\n[bold green]Batch Complete[/bold green]")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Targets", str(batch.total))
    table.add_row("Succeeded", f"[green]{batch.succeeded}[/green]")
    table.add_row("Partial", f"[yellow]{batch.partial}[/yellow]")
    table.add_row("Failed", f"[red]{batch.failed}[/red]")
    table.add_row("Screenshots", str(batch.screenshots))
    table.add_row("Duration", f"{batch.duration_seconds}s")
    console.print(table)

    if batch.failures:
        console.print("\n[red]Failures:[/red]")
        for failure in batch.failures:
            console.print(f"  - {failure.target or failure.tool_id}: {failure.error}")

    console.print(f"  JSON report: [blue]{report_path}[/blue]")


@cli.command()
@click.option("--config", "-c", default="screenshot-config.json", help="Config file path")
@click.option("--tool-id", "-t", default=None, help="Tool id (defaults to the newest published tool)")
@click.option("--url", "-u", default=None, help="Website URL to capture (requires --tool-id)")
def single(config: str, tool_id: Optional[str], url: Optional[str]) -> None:
    """Process one tool end-to-end and show the per-region outcome."""
    cfg = _load_config(config)
    orchestrator = _make_orchestrator(cfg)
    try:
        result = orchestrator.run_single(tool_id, url)
    except (LookupError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    table = Table(title=f"Tool {result.tool_id}: {result.url}")
    table.add_column("Region", style="bold")
    table.add_column("Outcome")
    table.add_column("URL")
    urls = dict(zip(result.regions, result.urls))
    dropped = {m.region: m for m in result.duplicates if not m.kept}
    for region in REGION_ORDER:
        if region in urls:
            table.add_row(region.value, "[green]uploaded[/green]", urls[region])
        elif region in dropped:
            match = dropped[region]
            table.add_row(region.value, f"[yellow]duplicate of {match.duplicate_of.value} "
                                        f"({match.score:.2f})[/yellow]", "")
        else:
            table.add_row(region.value, "[red]missing[/red]", "")
    console.print(table)

    console.print(f"Status: {result.status.value}  source: {result.source or '-'}  "
                  f"alternate pass: {result.alternate_pass}  ({result.duration_seconds}s)")
    for err in result.region_errors:
        console.print(f"  [yellow]{err}[/yellow]")
    if not result.success:
        console.print(f"[red]Failed: {result.error}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", default="screenshot-config.json", help="Config file path")
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(config: str, host: str, port: int) -> None:
    """Run the on-demand screenshot HTTP API."""
    import uvicorn

    from toolshots.api import create_app

    cfg = _load_config(config)
    uvicorn.run(create_app(cfg), host=host, port=port)


@cli.command()
@click.option("--config", "-c", default="screenshot-config.json", help="Config file path")
def init(config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    PipelineConfig().save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nSet SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY in .env.local, then run:")
    console.print("  [blue]toolshots single[/blue]   # verify on one tool first")
    console.print("  [blue]toolshots run[/blue]")


if __name__ == "__main__":
    cli()
