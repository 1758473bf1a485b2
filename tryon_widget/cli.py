"""
CLI for the try-on widget.

Drives the same orchestrator the embedded widget uses, from a terminal.
"""

import asyncio
import base64
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from tryon_widget import __version__
from tryon_widget import config as config_module
from tryon_widget.config import Config
from tryon_widget.core.api import TryOnClient
from tryon_widget.core.blobs import BlobConverter
from tryon_widget.core.cache_keys import CacheKeyCorrelator
from tryon_widget.core.store import detect_store_origin
from tryon_widget.display import ProgressPrinter, print_error, print_header, print_result
from tryon_widget.errors import TryOnError
from tryon_widget.models import GenerationMode, SelectedGarment
from tryon_widget.orchestrator import GenerationOrchestrator, OrchestratorSettings, Phase

console = Console()


def to_image_ref(value: str) -> str:
    """Local file paths become data URLs; URLs and data URLs pass through."""
    if value.startswith(("http://", "https://", "data:", "blob:")):
        return value
    path = Path(value)
    if not path.exists():
        raise click.BadParameter(f"No such file: {value}")
    mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _load_config() -> Config:
    cfg = Config.load()
    issues = cfg.validate()
    if issues:
        console.print("[red]Configuration issues:[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        sys.exit(1)
    return cfg


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """Try-on widget - virtual garment try-on from the terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--endpoint", help="Generation API endpoint, e.g. https://api.example.com")
@click.option("--shop", help="Default shop domain")
@click.option("--mode", type=click.Choice(["cart", "outfit"]), help="Default generation mode")
@click.option("--cancel-on-dispose", type=bool, default=None, help="Cancel in-flight generations on teardown (true/false)")
def setup(endpoint: Optional[str], shop: Optional[str], mode: Optional[str], cancel_on_dispose: Optional[bool]):
    """Save API endpoint and defaults."""
    cfg = Config.load()

    if endpoint:
        cfg.api.endpoint = endpoint
    if shop:
        cfg.defaults.shop = shop
    if mode:
        cfg.defaults.mode = mode
    if cancel_on_dispose is not None:
        cfg.defaults.cancel_on_dispose = cancel_on_dispose

    cfg.save()
    console.print(f"[green]Configuration saved to {config_module.GLOBAL_CONFIG_FILE}[/green]")


@main.command("check-config")
def check_config():
    """Check configuration status."""
    cfg = Config.load()
    issues = cfg.validate()

    console.print("[bold]Configuration:[/bold]")
    console.print(f"  Endpoint: {cfg.api.endpoint or '[red]missing[/red]'}")
    console.print(f"  Shop: {cfg.defaults.shop or '[yellow]not set[/yellow]'}")
    console.print(f"  Mode: {cfg.defaults.mode}")
    console.print(f"  Cancel on dispose: {cfg.defaults.cancel_on_dispose}")

    if issues:
        console.print("\n[red]Issues:[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        sys.exit(1)
    else:
        console.print("\n[green]Configuration OK![/green]")


@main.command()
@click.option("--mode", "-m", type=click.Choice(["cart", "outfit"]), default=None, help="Generation mode (default from config)")
@click.option("--photo", "-p", required=True, help="Person photo: file path, URL or data URL")
@click.option("--demo", "demo_url", help="Demo photo URL the photo corresponds to (enables person key)")
@click.option("--garment", "-g", "garments", multiple=True, required=True, help="Garment image (repeatable)")
@click.option("--type", "-t", "types", multiple=True, help="Garment type, aligned with --garment (repeatable)")
@click.option("--garment-id", "garment_ids", multiple=True, help="Catalog id, aligned with --garment (repeatable)")
@click.option("--shop", "-s", help="Shop domain (default from config)")
@click.option("--version-hint", type=click.Choice(["1", "2"]), default=None, help="Version hint")
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON")
def generate(mode, photo, demo_url, garments, types, garment_ids, shop, version_hint, json_output):
    """Generate try-on images for a photo and garments."""
    cfg = _load_config()
    shop = shop or cfg.defaults.shop
    if not shop:
        console.print("[red]Error: No shop given. Pass --shop or run 'tryon setup --shop'.[/red]")
        sys.exit(1)

    selected = []
    for index, garment in enumerate(garments):
        selected.append(SelectedGarment(
            url=to_image_ref(garment),
            type=types[index] if index < len(types) else None,
            catalog_id=garment_ids[index] if index < len(garment_ids) else None,
        ))

    settings = OrchestratorSettings.from_config(cfg)
    if mode:
        settings.default_mode = GenerationMode.from_string(mode)
    if version_hint:
        settings.default_version_hint = int(version_hint)

    print_header(settings.default_mode.value, len(selected), shop)
    outcome = asyncio.run(_run_generation(cfg, settings, to_image_ref(photo), demo_url, selected, shop))

    phase, result, error = outcome
    if error:
        print_error(error)
        if json_output:
            click.echo(json.dumps({"status": phase.value, "error": error}))
        sys.exit(1)

    print_result(result)
    if json_output:
        click.echo(json.dumps(_result_to_json(phase, result)))
    if phase is Phase.FAILURE:
        sys.exit(1)


async def _run_generation(cfg, settings, photo_ref, demo_url, garments, shop):
    identity = detect_store_origin(f"https://widget.local/?shop={shop}")
    async with TryOnClient(cfg.api.endpoint, timeout=cfg.api.timeout) as client, BlobConverter() as converter:
        async with GenerationOrchestrator(client, converter, settings=settings, store_identity=identity) as orchestrator:
            orchestrator.subscribe(ProgressPrinter())
            orchestrator.set_photo(photo_ref, demo_url=demo_url)
            for garment in garments:
                if not orchestrator.select_garment(garment):
                    console.print(f"[yellow]Skipping {garment.url[:60]}: {orchestrator.mode.value} mode takes at most {orchestrator.max_items} items[/yellow]")
            result = await orchestrator.generate()
            return orchestrator.phase, result, orchestrator.error


def _result_to_json(phase: Phase, result) -> dict:
    data = {"status": phase.value}
    if hasattr(result, "results"):
        data["results"] = [
            {
                "index": item.index,
                "status": item.status.value,
                "image": item.image.src if item.image else None,
                "cached": item.cached,
                "error": item.error_message,
            }
            for item in result.results
        ]
        data["summary"] = {
            "total": result.summary.total_garments,
            "successful": result.summary.successful,
            "failed": result.summary.failed,
            "cached": result.summary.cached,
        }
    elif result is not None:
        data["image"] = result.image.src
        data["cached"] = result.cached
        data["garment_types"] = result.garment_types
        data["credits_deducted"] = result.credits_deducted
    return data


@main.command("cache-status")
@click.option("--shop", "-s", help="Shop domain (default from config)")
@click.option("--limit", "-n", default=50, help="Number of records to inspect")
def cache_status(shop: Optional[str], limit: int):
    """Show which person/garment keys have already been generated."""
    cfg = _load_config()
    shop = shop or cfg.defaults.shop

    async def fetch():
        async with TryOnClient(cfg.api.endpoint, timeout=cfg.api.timeout) as client:
            return await client.fetch_image_generations(store_name=shop, limit=limit)

    try:
        records = asyncio.run(fetch())
    except TryOnError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    correlator = CacheKeyCorrelator.from_records(records)

    table = Table(title=f"Generated keys for {shop or 'all stores'}")
    table.add_column("Kind")
    table.add_column("Count", justify="right")
    table.add_row("Records", str(len(records)))
    table.add_row("Completed", str(sum(1 for r in records if r.is_completed)))
    table.add_row("Person keys", str(len(correlator.person_keys)))
    table.add_row("Garment keys", str(len(correlator.garment_keys)))
    table.add_row("Person-garment pairs", str(len(correlator.pairs)))
    console.print(table)


if __name__ == "__main__":
    main()
