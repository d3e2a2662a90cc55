import functools
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from ..config import LineageConfig, LineageSetup
from ..errors import LineageError
from ..models import EntityKind
from ..platforms.json_file import write_export
from ..renderers import OutputFormat
from ..service import CHILD_ENTITIES, DEFAULT_DIAGRAM_NODES, LINEAGE_ENTITIES, PARENT_ENTITIES

KIND_CHOICES = click.Choice(['dataset', 'dataflow', 'card', 'alert'], case_sensitive=False)
FORMAT_CHOICES = click.Choice([f.value for f in OutputFormat], case_sensitive=False)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def exit_on_error(func):
    """Turn lineage and configuration errors into a one-line message and exit 1"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (LineageError, ValueError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    return wrapper


def get_setup(ctx: click.Context, offline_file: Optional[str] = None) -> LineageSetup:
    config: LineageConfig = ctx.obj['config']
    if offline_file:
        config.offline = True
    config.validate()
    return LineageSetup(config, offline_file=offline_file)


def emit(output: str, output_path: Optional[str]) -> None:
    if output_path:
        Path(output_path).write_text(output + "\n")
        click.echo(f"Wrote lineage to {output_path}")
    else:
        click.echo(output)


@click.group()
@click.option('--env-file', default=None, help='Path to .env file')
@click.option('--debug/--no-debug', default=False, help='Enable debug logging')
@click.pass_context
def cli(ctx: click.Context, env_file: Optional[str], debug: bool):
    """Lineage graphs for datasets, dataflows and cards"""
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING, format=LOG_FORMAT)
    ctx.ensure_object(dict)
    ctx.obj['config'] = LineageConfig.from_env(env_file)
    ctx.obj['debug'] = debug


@cli.command()
@click.argument('entity_id')
@click.option('--kind', type=KIND_CHOICES, default='dataset', help='Type of the starting entity')
@click.option('--up/--no-up', default=True, help='Follow producers')
@click.option('--down/--no-down', default=True, help='Follow consumers')
@click.option('--format', 'fmt', type=FORMAT_CHOICES, default='text', help='Output format')
@click.option('--max-depth', type=int, default=None, help='Hops from the entity to expand')
@click.option('--max-nodes', type=int, default=None, help='Maximum number of nodes to collect')
@click.option('--offline-file', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Exported JSON records to read instead of the API')
@click.option('--output', 'output_path', default=None, help='Write the result to a file')
@click.pass_context
@exit_on_error
def show(ctx, entity_id: str, kind: str, up: bool, down: bool, fmt: str, max_depth: Optional[int],
         max_nodes: Optional[int], offline_file: Optional[str], output_path: Optional[str]):
    """Build lineage for an entity from cached or live records"""
    service = get_setup(ctx, offline_file).get_service()
    report = service.show_lineage(entity_id, EntityKind.from_api(kind), up, down, fmt,
                                  max_depth=max_depth, max_nodes=max_nodes)
    emit(report.output, output_path)
    if not report.complete and OutputFormat.parse(fmt) is not OutputFormat.TEXT:
        click.echo("Warning: lineage incomplete", err=True)


@cli.command()
@click.argument('entity_id')
@click.option('--kind', type=KIND_CHOICES, default='dataset', help='Type of the starting entity')
@click.option('--up/--no-up', default=True, help='Request ancestors')
@click.option('--down/--no-down', default=True, help='Request descendants')
@click.option('--entities', default=LINEAGE_ENTITIES, help='Entity types to request')
@click.option('--format', 'fmt', type=FORMAT_CHOICES, default='text', help='Output format')
@click.option('--output', 'output_path', default=None, help='Write the result to a file')
@click.pass_context
@exit_on_error
def remote(ctx, entity_id: str, kind: str, up: bool, down: bool, entities: str, fmt: str,
           output_path: Optional[str]):
    """Fetch lineage for an entity from the lineage API"""
    service = get_setup(ctx).get_service()
    report = service.remote_lineage(entity_id, EntityKind.from_api(kind), up, down, fmt,
                                    request_entities=entities)
    emit(report.output, output_path)
    if not report.complete and OutputFormat.parse(fmt) is not OutputFormat.TEXT:
        click.echo("Warning: lineage incomplete", err=True)


def echo_neighbors(title: str, neighbors, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(neighbors, indent=2))
        return
    if not neighbors:
        click.echo(f"No {title.lower()} found for this dataset.")
        return
    click.echo(f"{title}:")
    for key, entry in neighbors.items():
        name = entry.get('name')
        click.echo(f"  {key}" + (f" ({name})" if name else ""))


@cli.command()
@click.argument('dataset_id')
@click.option('--entities', default=PARENT_ENTITIES, help='Entity types to request')
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the raw keyed mapping')
@click.pass_context
@exit_on_error
def parents(ctx, dataset_id: str, entities: str, as_json: bool):
    """Direct parents of a dataset"""
    service = get_setup(ctx).get_service()
    echo_neighbors("Parents", service.dataset_parents(dataset_id, request_entities=entities), as_json)


@cli.command()
@click.argument('dataset_id')
@click.option('--entities', default=CHILD_ENTITIES, help='Entity types to request')
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the raw keyed mapping')
@click.pass_context
@exit_on_error
def children(ctx, dataset_id: str, entities: str, as_json: bool):
    """Direct children of a dataset"""
    service = get_setup(ctx).get_service()
    echo_neighbors("Children", service.dataset_children(dataset_id, request_entities=entities), as_json)


@cli.command()
@click.argument('source_id')
@click.argument('target_id')
@click.option('--source-kind', type=KIND_CHOICES, default='dataset', help='Type of the source entity')
@click.option('--target-kind', type=KIND_CHOICES, default='dataset', help='Type of the target entity')
@click.option('--max-depth', type=int, default=None, help='Hops from the source to expand')
@click.option('--offline-file', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Exported JSON records to read instead of the API')
@click.pass_context
@exit_on_error
def paths(ctx, source_id: str, target_id: str, source_kind: str, target_kind: str,
          max_depth: Optional[int], offline_file: Optional[str]):
    """Trace every downstream path between two entities"""
    service = get_setup(ctx, offline_file).get_service()
    found = service.trace_paths(source_id, EntityKind.from_api(source_kind), target_id,
                                EntityKind.from_api(target_kind), max_depth=max_depth)
    if not found:
        click.echo("No paths found.")
        return
    for i, path in enumerate(found, 1):
        click.echo(f"Path {i} ({path.distance} hops): " + " -> ".join(node.key for node in path.nodes))


@cli.command()
@click.option('--kind', type=KIND_CHOICES, default='dataset', help='Type of entity to report')
@click.option('--offline-file', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Exported JSON records to read instead of the API')
@click.pass_context
@exit_on_error
def orphans(ctx, kind: str, offline_file: Optional[str]):
    """List entities with no lineage connections"""
    service = get_setup(ctx, offline_file).get_service()
    found = service.orphans(EntityKind.from_api(kind))
    click.echo(f"Orphaned {EntityKind.from_api(kind).label}s: {len(found)}")
    for node in sorted(found, key=lambda n: (n.name or "", n.id)):
        click.echo(f"  {node.id} [{node.display_name}]")


@cli.command()
@click.option('--offline-file', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Exported JSON records to read instead of the API')
@click.pass_context
@exit_on_error
def stats(ctx, offline_file: Optional[str]):
    """Summary counts for the whole catalog"""
    service = get_setup(ctx, offline_file).get_service()
    click.echo(json.dumps(service.statistics(), indent=2))


@cli.command()
@click.option('--format', 'fmt', type=FORMAT_CHOICES, default='mermaid', help='Output format')
@click.option('--max-nodes', type=int, default=DEFAULT_DIAGRAM_NODES, show_default=True,
              help='Most nodes to draw in a Mermaid diagram')
@click.option('--offline-file', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Exported JSON records to read instead of the API')
@click.option('--output', 'output_path', default=None, help='Write the result to a file')
@click.pass_context
@exit_on_error
def diagram(ctx, fmt: str, max_nodes: int, offline_file: Optional[str], output_path: Optional[str]):
    """Draw lineage for the whole catalog"""
    service = get_setup(ctx, offline_file).get_service()
    emit(service.catalog_diagram(fmt, max_nodes=max_nodes), output_path)


@cli.command()
@click.argument('output_path')
@click.pass_context
@exit_on_error
def export(ctx, output_path: str):
    """Save every dataset, dataflow and card for offline use"""
    setup = get_setup(ctx)
    setup.setup()
    if setup.source is None:
        raise ValueError("Export needs API access; unset DOMO_OFFLINE")
    counts = write_export(setup.source, output_path)
    click.echo(f"Exported {counts['datasets']} datasets, {counts['dataflows']} dataflows "
               f"and {counts['cards']} cards to {output_path}")


@cli.group()
def cache():
    """Inspect or clear the record cache"""
    pass


@cache.command()
@click.pass_context
def status(ctx):
    """Show cache entry counts"""
    setup = LineageSetup(ctx.obj['config'])
    for key, value in setup.get_cache().get_stats().items():
        click.echo(f"{key}: {value}")


@cache.command()
@click.option('--pattern', default=None, help='Only drop keys matching this regex')
@click.pass_context
def clear(ctx, pattern: Optional[str]):
    """Remove cached records"""
    record_cache = LineageSetup(ctx.obj['config']).get_cache()
    if pattern:
        record_cache.invalidate_pattern(pattern)
        click.echo(f"Cleared cache entries matching {pattern}")
    else:
        record_cache.clear()
        click.echo("Cache cleared")


if __name__ == '__main__':
    cli()
