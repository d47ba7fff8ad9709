"""Command line for the relay.

Usage:
    listing-relay scan --output ./output
    listing-relay monitor --interval 60
    listing-relay stats
    listing-relay reset
"""

import logging
from pathlib import Path
from typing import Optional

import typer

from listing_relay.core.config import PipelineConfig
from listing_relay.core.errors import DiscoveryError, LedgerIOError
from listing_relay.services.ledger import Ledger

logger = logging.getLogger(__name__)
app = typer.Typer(help="Discover listings, fetch their files and relay them to the upload API")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _config(output: Optional[str], source_url: Optional[str]) -> PipelineConfig:
    return PipelineConfig.from_env(output_dir=output, source_url=source_url)


@app.command()
def scan(
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output directory for fetched files"),
    source_url: Optional[str] = typer.Option(None, help="Listing page to scan"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Scan the source once and relay every new file."""
    from listing_relay.flows.sync_flow import listing_sync_flow

    _configure_logging(verbose)
    config = _config(output, source_url)
    try:
        summary = listing_sync_flow(config.model_dump())
    except DiscoveryError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)

    typer.echo("📊 Final statistics:")
    typer.echo(f"   Processed: {summary['processed']}")
    typer.echo(f"   Fetched: {summary['fetched']}")
    typer.echo(f"   Published: {summary['published']}")
    typer.echo(f"   Skipped (already delivered): {summary['skipped_already_delivered']}")
    typer.echo(f"   Errors: {summary['errors']}")


@app.command()
def monitor(
    output: Optional[str] = typer.Option(None, "--output", "-o"),
    source_url: Optional[str] = typer.Option(None),
    interval: int = typer.Option(60, "--interval", "-i", help="Check interval in minutes"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Scan continuously, waiting `interval` minutes between scans."""
    from listing_relay.flows.sync_flow import listing_monitor_flow

    if interval < 1:
        typer.echo("❌ Invalid interval. Must be a positive number", err=True)
        raise typer.Exit(1)
    _configure_logging(verbose)
    listing_monitor_flow(_config(output, source_url).model_dump(), interval_minutes=interval)


@app.command()
def stats(output: Optional[str] = typer.Option(None, "--output", "-o")) -> None:
    """Show ledger statistics."""
    config = _config(output, None)
    ledger = Ledger(config.ledger_path).load()
    s = ledger.stats()
    typer.echo("📊 Ledger statistics:")
    typer.echo(f"   Total items found: {s.total_found}")
    typer.echo(f"   Delivered files: {s.total_delivered}")
    typer.echo(f"   Items with pending files: {s.remaining}")
    typer.echo(
        f"   Success rate: {s.success_rate}% "
        f"({s.delivered_artifacts}/{s.total_artifacts} known files)"
    )
    if s.last_run_at:
        typer.echo(f"   Last scan: {s.last_run_at}")
    out = Path(config.output_dir)
    if out.is_dir():
        own = {config.ledger_filename, config.manifest_path.name}
        files = [
            p
            for p in out.iterdir()
            if p.is_file() and p.name not in own and p.suffix not in (".part", ".tmp")
        ]
        typer.echo(f"   Files on disk: {len(files)}")


@app.command()
def reset(output: Optional[str] = typer.Option(None, "--output", "-o")) -> None:
    """Forget delivered files so they are published again; discovered items are kept."""
    config = _config(output, None)
    ledger = Ledger(config.ledger_path).load()
    try:
        ledger.reset()
    except LedgerIOError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)
    typer.echo("✅ Delivered files list reset")


if __name__ == "__main__":
    app()
