#!/usr/bin/env python3
"""
MCU Pin Mapper - CLI Interface
Reads a database extracted from CubeMX and produces a table of all signals
that can be mapped to the microcontroller pins. The table can be opened
with a spreadsheet to assign functions to pins.

Usage:
    app.py parts 'STM32F103C'               # List matching parts
    app.py table STM32F103C(8-B)Tx          # Pin out table as CSV on stdout
    app.py -x ETH table STM32F407V(E-G)Tx -o pins.csv
    app.py show STM32F407V(E-G)Tx           # Pin out table in the terminal
"""

import logging
import sys
import traceback

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from config import load_settings
from database import CubeMXDatabase, MalformedDatabase, PartInfo, PinmapError
from pinout import DELIMITERS, SignalFilter, build_table, to_rich_table, write_table
from validator import DatabaseValidator

# Status messages go to stderr, stdout only carries table data
console = Console(stderr=True)
out = Console()

logger = logging.getLogger("pinmap")

def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
        force=True
    )

@click.group()
@click.option('--database', '-d', type=click.Path(file_okay=False), envvar='PINMAP_DATABASE',
              help='Database path (default: db)')
@click.option('--config', '-c', 'config_file', type=click.Path(dir_okay=False),
              help='Settings file (default: ./pinmap.yaml if present)')
@click.option('--exclude', '-x', multiple=True, help='Exclude peripheral signals, may be repeated')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def main(ctx, database: str, config_file: str, exclude, verbose: bool):
    """MCU pins mapper."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    try:
        settings = load_settings(config_file)
    except PinmapError as e:
        fail("Configuration Error", e, verbose)

    if settings.source:
        logger.info("Settings loaded from %s", settings.source)
    ctx.obj['settings'] = settings
    ctx.obj['database'] = CubeMXDatabase(database or settings.database)
    ctx.obj['exclude'] = list(settings.exclude) + list(exclude)

def fail(title: str, error: Exception, verbose: bool):
    """Report an error and terminate the run"""
    console.print(f"[red]❌ {title}:[/red] {escape(str(error))}", soft_wrap=True)
    if verbose:
        console.print(f"\n[red]Traceback:[/red]\n{escape(traceback.format_exc())}", soft_wrap=True)
    sys.exit(1)

def load_valid_part(db: CubeMXDatabase, part: str, verbose: bool) -> PartInfo:
    """Load a part and refuse it when its pin data is inconsistent"""
    part_info = db.load_part(part)
    result = DatabaseValidator().validate(part_info)

    for warning in result.warnings:
        logger.warning("%s", warning)
    if verbose:
        for info in result.info_messages:
            logger.info("%s", info)
    if result.has_errors():
        details = "; ".join(str(error) for error in result.errors)
        raise MalformedDatabase(f"{part}: {len(result.errors)} error(s): {details}")
    return part_info

def make_filter(ctx, raw: bool) -> SignalFilter:
    settings = ctx.obj['settings']
    if raw:
        return SignalFilter(ctx.obj['exclude'])
    return SignalFilter.default(ctx.obj['exclude'], settings.substitutions, settings.factorizations)

@main.command()
@click.argument('pattern')
@click.option('--table', 'as_table', is_flag=True, help='Show parts as a table')
@click.pass_context
def parts(ctx, pattern: str, as_table: bool):
    """Search the database for MCUs matching the given regex."""
    db = ctx.obj['database']
    verbose = ctx.obj['verbose']
    try:
        names = db.list_parts(pattern)
        if not as_table:
            for name in names:
                click.echo(db.load_part(name).summary())
            return

        parts_table = Table(title=f"Parts matching '{pattern}' ({len(names)})")
        parts_table.add_column("Part", style="cyan")
        parts_table.add_column("Line", style="green")
        parts_table.add_column("Package", style="blue")
        parts_table.add_column("Mode", style="magenta")
        parts_table.add_column("Pins", style="yellow", justify="right")
        for name in names:
            part_info = db.load_part(name)
            parts_table.add_row(
                part_info.part,
                part_info.line,
                part_info.package,
                part_info.gpio_mode.value.upper(),
                str(len(part_info.pins))
            )
        out.print(parts_table)
    except PinmapError as e:
        fail("Database Error", e, verbose)

@main.command()
@click.argument('part')
@click.option('--output', '-o', type=click.Path(dir_okay=False, allow_dash=True),
              help='Output file path (default: stdout)')
@click.option('--format', 'fmt', type=click.Choice(sorted(DELIMITERS)), help='Output format')
@click.option('--header/--no-header', default=None, help='Write a header row')
@click.option('--raw', is_flag=True, help='Keep vendor signal names, no shortening')
@click.pass_context
def table(ctx, part: str, output: str, fmt: str, header: bool, raw: bool):
    """Output a pin out table for a given part."""
    settings = ctx.obj['settings']
    verbose = ctx.obj['verbose']
    if verbose:
        console.print(Panel.fit(
            "[bold blue]MCU Pin Mapper[/bold blue]\n"
            f"[dim]{escape(part)} from {escape(str(ctx.obj['database'].root))}[/dim]",
            border_style="blue"
        ))

    try:
        part_info = load_valid_part(ctx.obj['database'], part, verbose)
        pin_table = build_table(part_info, make_filter(ctx, raw))
        write_table(
            pin_table,
            output,
            delimiter=DELIMITERS[fmt or settings.format],
            header=settings.header if header is None else header
        )
    except PinmapError as e:
        fail("Pin Table Error", e, verbose)
    except Exception as e:
        fail("Unexpected Error", e, verbose)

    if output and output != "-":
        console.print(
            f"[green]✓ {escape(part_info.summary())}: "
            f"{len(pin_table.rows)} pins written to {escape(output)}[/green]"
        )

@main.command()
@click.argument('part')
@click.option('--raw', is_flag=True, help='Keep vendor signal names, no shortening')
@click.pass_context
def show(ctx, part: str, raw: bool):
    """Show the pin out table of a part in the terminal."""
    verbose = ctx.obj['verbose']
    try:
        part_info = load_valid_part(ctx.obj['database'], part, verbose)
        pin_table = build_table(part_info, make_filter(ctx, raw))
    except PinmapError as e:
        fail("Pin Table Error", e, verbose)
    except Exception as e:
        fail("Unexpected Error", e, verbose)

    out.print(to_rich_table(pin_table, title=part_info.summary()))

if __name__ == "__main__":
    main()
