"""CLI entry point for incluster."""

import json
import logging
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.table import Table

from .config import DEFAULT_CONFIG, load_config
from .errors import ClusteringError, ConcurrencyDeferral

console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """incluster - Group browsing sessions and notes into topics."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _get_config(ctx) -> dict:
    return load_config(ctx.obj.get("config_path"))


@cli.command()
@click.option("--path", default="incluster.yaml", help="Where to write the config file")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init(path, force):
    """Write a starter configuration file."""
    config_file = Path(path).expanduser()
    if config_file.exists() and not force:
        console.print(f"[yellow]Config already exists: {config_file}[/] (use --force to overwrite)")
        return

    config_file.parent.mkdir(parents=True, exist_ok=True)
    header = (
        "# Strategy preset, see `incluster strategies`\n"
        "# Weights apply to the linear and sigmoid strategies\n\n"
    )
    config_file.write_text(header + yaml.dump(DEFAULT_CONFIG, default_flow_style=False))
    console.print(f"[bold green]✓ Created config: {config_file}[/]")


@cli.command()
def strategies():
    """List the strategy presets accepted by `candidate`."""
    from .clustering.candidates import CANDIDATES

    table = Table(title="Strategy presets")
    table.add_column("Id", style="cyan", justify="right")
    table.add_column("Adjacency")
    table.add_column("Laplacian")
    table.add_column("Cluster count")
    for strategy_id, candidate in sorted(CANDIDATES.items()):
        table.add_row(
            str(strategy_id),
            candidate.adjacency.value,
            candidate.laplacian.value,
            candidate.num_clusters.value,
        )
    console.print(table)


def _read_records(path: Path) -> list[dict]:
    text = path.read_text()
    if path.suffix == ".json":
        records = json.loads(text)
    else:
        records = yaml.safe_load(text)
    if not isinstance(records, list):
        raise click.BadParameter(f"{path} must hold a list of records")
    return records


def _to_data_point(record: dict):
    from .models import Note, Page

    record = dict(record)
    kind = record.pop("type", "page")
    if kind == "page":
        return Page(**record)
    if kind == "note":
        return Note(**record)
    raise click.BadParameter(f"Unknown record type: {kind}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--candidate", type=int, default=None, help="Override the strategy preset")
@click.pass_context
def replay(ctx, file, candidate):
    """Feed page/note records from FILE through the engine and show the groups."""
    from .engine import ClusteringEngine
    from .models import Page

    config = _get_config(ctx)
    if candidate is not None:
        config["candidate"] = candidate

    records = _read_records(file)
    console.print(f"[blue]Replaying {len(records)} record(s)...[/]")

    result = None
    with ClusteringEngine(config) as engine:
        for record in records:
            point = _to_data_point(record)
            if isinstance(point, Page):
                future = engine.add(page=point)
            else:
                future = engine.add(note=point)
            try:
                result = future.result()
            except ConcurrencyDeferral as e:
                result = e.replay.result()
            except ClusteringError as e:
                console.print(f"[red]Skipped {point.id}: {e.message}[/]")

    if result is None:
        console.print("[yellow]Nothing was clustered.[/]")
        return

    table = Table(title="Groups")
    table.add_column("#", style="dim", width=3)
    table.add_column("Pages", style="cyan")
    table.add_column("Notes", style="green")
    for i, (pages, notes) in enumerate(zip(result.page_groups, result.note_groups)):
        table.add_row(str(i), ", ".join(map(str, pages)), ", ".join(map(str, notes)))
    console.print(table)
    console.print(f"[green]✓ {len(result.page_groups)} group(s)[/], flag: {result.flag.value}")


if __name__ == "__main__":
    cli()
