"""
Command-line interface for db_meta.

Provides extract, count, query and info commands on top of the metadata
resolver.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from db_meta import __version__
from db_meta.config import build_target, load_connection_config, load_pool_options
from db_meta.errors import MetaError
from db_meta.metadata import MetadataResolver
from db_meta.models import ConnectionTarget, EngineKind, Metadata

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def connection_options(func):
    """Attach the options that describe a connection target."""
    options = [
        click.option(
            "--config",
            "config_file",
            type=click.Path(exists=True, path_type=Path),
            default=None,
            help="YAML file with connection (and pool) settings",
        ),
        click.option(
            "--engine",
            type=click.Choice([e.value for e in EngineKind]),
            default=None,
            help="Database engine",
        ),
        click.option("--host", type=str, default=None, help="Database host"),
        click.option("--port", type=int, default=None, help="Database port (engine default if omitted)"),
        click.option("--username", type=str, default=None, help="Database user"),
        click.option(
            "--password",
            type=str,
            default=None,
            envvar="DB_META_PASSWORD",
            help="Database password (or DB_META_PASSWORD)",
        ),
        click.option("--database", type=str, default=None, help="Database name"),
        click.option("--schema", type=str, default=None, help="Schema to read (MySQL: database, PostgreSQL: public)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _resolve_target(
    config_file: Optional[Path],
    engine: Optional[str],
    host: Optional[str],
    port: Optional[int],
    username: Optional[str],
    password: Optional[str],
    database: Optional[str],
    schema: Optional[str],
) -> ConnectionTarget:
    """Combine a config file with command-line overrides."""
    if config_file:
        base = load_connection_config(config_file)
        return build_target(
            engine=engine or base.engine,
            host=host or base.host,
            port=port if port is not None else base.port,
            username=username or base.username,
            password=password or base.password,
            database=database or base.database,
            schema=schema or base.schema,
        )
    if not engine:
        raise click.UsageError("Provide --engine or --config")
    return build_target(engine, host, username, password, database, port, schema)


def _make_resolver(parallel: bool = False, **conn) -> MetadataResolver:
    target = _resolve_target(**conn)
    pool_options = load_pool_options(conn["config_file"]) if conn["config_file"] else {}
    return MetadataResolver(target, parallel=parallel, pool_options=pool_options)


def handle_errors(func):
    """Report MetaError as a red message and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except MetaError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(1)
    return wrapper


def print_summary(metadata: Metadata) -> None:
    """Print tables and views of a metadata document."""
    tables_table = Table(title="Tables")
    tables_table.add_column("Table", style="cyan")
    tables_table.add_column("Columns", style="green", justify="right")
    tables_table.add_column("PK", style="yellow")
    tables_table.add_column("Indexes", style="magenta")
    tables_table.add_column("Comment")

    for table in metadata.tables:
        tables_table.add_row(
            escape(table.full_name),
            str(len(table.columns)),
            escape(table.pk_column) or "-",
            escape(", ".join(table.index_names)) or "-",
            escape(table.comment or ""),
        )
    console.print(tables_table)

    if metadata.views:
        views_table = Table(title="Views")
        views_table.add_column("View", style="cyan")
        views_table.add_column("Columns", style="green", justify="right")
        for view in metadata.views:
            views_table.add_row(escape(view.full_name), str(len(view.columns)))
        console.print(views_table)


@click.group()
@click.version_option(version=__version__, prog_name="db_meta")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """
    db_meta - Relational catalog metadata extraction

    Reads tables, views, columns, indexes and primary keys from MySQL or
    PostgreSQL catalogs into one engine-agnostic document.
    """
    setup_logging(verbose)


@cli.command()
@connection_options
@click.option(
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the metadata document to this file (.json, .yaml or .yml)",
)
@click.option("--parallel", is_flag=True, help="Read tables and views concurrently")
@handle_errors
def extract(output: Optional[Path], parallel: bool, **conn) -> None:
    """
    Extract the metadata document of a database schema.

    Examples:

        db_meta extract --engine mysql --host localhost --username root \\
            --password secret --database shop --output shop.json

        db_meta extract --config configs/warehouse.yaml --output warehouse.yaml
    """
    with _make_resolver(parallel=parallel, **conn) as resolver:
        target = resolver.target
        console.print("[bold blue]db_meta Extraction[/bold blue]")
        console.print(f"Engine: {target.engine.value}")
        console.print(f"Database: {escape(target.database)} (schema {escape(target.effective_schema)})")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Reading catalog...", total=None)
            metadata = resolver.resolve()
            progress.update(task, completed=True)

    print_summary(metadata)

    if output:
        metadata.save(output)
        console.print(f"\n[green]Metadata saved to: {escape(str(output))}[/green]")


@cli.command()
@connection_options
@click.argument("sql")
@handle_errors
def count(sql: str, **conn) -> None:
    """
    Run a scalar SQL query and print the result.

    The SQL is executed verbatim.
    """
    with _make_resolver(**conn) as resolver:
        console.print(resolver.count(sql))


@cli.command()
@connection_options
@click.argument("sql")
@handle_errors
def query(sql: str, **conn) -> None:
    """
    Run a SQL query and print the rows as text.

    The SQL is executed verbatim.
    """
    with _make_resolver(**conn) as resolver:
        rows = resolver.query(sql)

    result_table = Table(title=f"{len(rows)} row(s)")
    width = max((len(r) for r in rows), default=0)
    for i in range(width):
        result_table.add_column(f"#{i + 1}")
    for row in rows:
        result_table.add_row(*(escape(cell) for cell in row))
    console.print(result_table)


@cli.command()
@click.option(
    "--metadata",
    "metadata_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to a saved metadata document",
)
@handle_errors
def info(metadata_file: Path) -> None:
    """
    Display a saved metadata document.

    Example:

        db_meta info --metadata shop.json
    """
    console.print("[bold blue]Metadata Document[/bold blue]")
    metadata = Metadata.load(metadata_file)
    console.print(f"Tables: {len(metadata.tables)}")
    console.print(f"Views: {len(metadata.views)}")
    print_summary(metadata)


if __name__ == "__main__":
    cli()
