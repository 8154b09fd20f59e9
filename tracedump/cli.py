"""
tracedump Command Line Interface
Converts trace.dat files to text, Parquet, header reports or metadata.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from tracedump import __version__
from tracedump.core.config import DumpConfig, load_config
from tracedump.core.errors import TraceDumpError
from tracedump.core.schema import (
    CheckHeaderCommand,
    CompressionScheme,
    HumanReadableCommand,
    MetadataCommand,
    ParquetCommand,
)
from tracedump.core.utils import setup_logging
from tracedump.pipeline.dispatcher import Command, run
from tracedump.pipeline.reporter import EXIT_FAILURE

logger = logging.getLogger("tracedump.cli")

TRACE_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)


def trace_option(f):
    return click.option("--trace", required=True, type=TRACE_PATH, help="Path to the trace.dat file")(f)


@click.group()
@click.option("--errors-json", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the list of errors as JSON to this file")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(__version__, prog_name="trace-dump")
@click.pass_context
def cli(ctx: click.Context, errors_json: Optional[Path], config_path: Optional[str], verbose: bool) -> None:
    """
    trace-dump - convert trace-cmd trace.dat files.

    Dumps events as text or Parquet, checks the header for consistency or
    prints its metadata.
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["errors_json"] = errors_json

    try:
        ctx.obj["config"] = load_config(config_path) if config_path else DumpConfig()
    except (OSError, TraceDumpError) as e:
        raise click.BadParameter(str(e), param_hint="--config")


def _execute(ctx: click.Context, command: Command) -> None:
    try:
        status = run(command, errors_json=ctx.obj["errors_json"], config=ctx.obj["config"])
    except (OSError, TraceDumpError) as e:
        logger.debug("Trace dump aborted", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_FAILURE)
    ctx.exit(status)


@cli.command("human-readable")
@trace_option
@click.option("--raw", is_flag=True, help="Print raw event payloads instead of decoded fields")
@click.pass_context
def human_readable(ctx: click.Context, trace: Path, raw: bool) -> None:
    """Print every event as a line of text."""
    _execute(ctx, HumanReadableCommand(trace=trace, raw=raw))


@cli.command("parquet")
@trace_option
@click.option("--events", "-e", multiple=True,
              help="Event to export ('name' or 'system:name'); repeatable or comma-separated. Default: all")
@click.option("--unique-timestamps", is_flag=True,
              help="Make timestamps strictly increasing with a minimum gap of 2ns")
@click.option("--compression", type=click.Choice(["lz4", "snappy", "zstd"]), default=None,
              help="Compression applied to each chunk")
@click.option("--chunk-size", type=click.IntRange(min=1), default=None,
              help="Rows per chunk (row group) [default: 65536]")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory receiving the Parquet files [default: .]")
@click.pass_context
def parquet(
    ctx: click.Context,
    trace: Path,
    events: Tuple[str, ...],
    unique_timestamps: bool,
    compression: Optional[str],
    chunk_size: Optional[int],
    output_dir: Optional[Path],
) -> None:
    """
    Export events to one Parquet file per event type.

    Rows are written in chunks of a fixed number of rows, each chunk
    compressed with the selected scheme.
    """
    config: DumpConfig = ctx.obj["config"]

    names = tuple(name.strip() for value in events for name in value.split(",") if name.strip())

    command = ParquetCommand(
        trace=trace,
        events=names or None,
        unique_timestamps=unique_timestamps,
        compression=CompressionScheme.parse(compression) if compression else config.compression,
        chunk_size=chunk_size if chunk_size is not None else config.chunk_size,
        output_dir=output_dir if output_dir is not None else Path(config.output_dir),
    )
    _execute(ctx, command)


@cli.command("check-header")
@trace_option
@click.pass_context
def check_header(ctx: click.Context, trace: Path) -> None:
    """Check the header for internal consistency."""
    _execute(ctx, CheckHeaderCommand(trace=trace))


@cli.command("metadata")
@trace_option
@click.pass_context
def metadata(ctx: click.Context, trace: Path) -> None:
    """Print the header metadata as JSON."""
    _execute(ctx, MetadataCommand(trace=trace))


def main() -> None:
    """Main entry point; every failure, including usage errors, exits with status 1."""
    try:
        status = cli.main(obj={}, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(EXIT_FAILURE)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(EXIT_FAILURE)
    sys.exit(status or 0)


if __name__ == "__main__":
    main()
