"""
Command Dispatcher

Runs exactly one transformation pipeline per invocation, selected by the
command variant, writing through a single buffered output stream that is
flushed once when the pipeline is done.
"""

import io
import logging
import sys
from pathlib import Path
from typing import BinaryIO, Optional, Union

from tracedump.core.config import DumpConfig
from tracedump.core.outcome import Outcome
from tracedump.core.schema import (
    CheckHeaderCommand,
    HumanReadableCommand,
    MetadataCommand,
    ParquetCommand,
)
from tracedump.pipeline.reporter import ErrorReporter
from tracedump.pipeline.source import TraceSource, acquire_trace
from tracedump.pipeline.timestamps import TimestampNormalizer
from tracedump.traceformat.check import check_header
from tracedump.traceformat.metadata import dump_header_metadata
from tracedump.traceformat.parquet import dump_events
from tracedump.traceformat.printer import print_events

logger = logging.getLogger(__name__)

OUTPUT_BUFFER_SIZE = 1024 * 1024

Command = Union[HumanReadableCommand, ParquetCommand, CheckHeaderCommand, MetadataCommand]


class BufferedOutput:
    """
    UTF-8 text sink over a binary stream (stdout by default) with a large
    write buffer.

    close() flushes and detaches the wrappers without closing the
    underlying stream.
    """

    def __init__(self, stream: Optional[BinaryIO] = None, capacity: int = OUTPUT_BUFFER_SIZE):
        self._stream = stream if stream is not None else sys.stdout.buffer
        self._buffered = io.BufferedWriter(self._stream, buffer_size=capacity)
        self._text = io.TextIOWrapper(self._buffered, encoding="utf-8", errors="replace", newline="\n")
        self.capacity = capacity
        self.closed = False

    def write(self, s: str) -> int:
        return self._text.write(s)

    def flush(self) -> None:
        self._text.flush()
        self._buffered.flush()
        self._stream.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.flush()
        finally:
            self._text.detach()
            self._buffered.detach()


def dispatch(command: Command, source: TraceSource, out, config: Optional[DumpConfig] = None) -> Outcome:
    """Run the pipeline matching the command variant against an acquired source."""
    config = config or DumpConfig()
    header, reader = source.header, source.reader

    logger.info(f"Dispatching {type(command).__name__} on {source.path}")

    if isinstance(command, HumanReadableCommand):
        return print_events(header, reader, out, raw=command.raw)

    if isinstance(command, ParquetCommand):
        make_ts = TimestampNormalizer(enabled=command.unique_timestamps, gap=config.timestamp_gap)
        return dump_events(
            header,
            reader,
            make_ts,
            events=command.events,
            chunk_size=command.chunk_size,
            compression=command.compression,
            output_dir=command.output_dir,
        )

    if isinstance(command, CheckHeaderCommand):
        return check_header(header, out)

    if isinstance(command, MetadataCommand):
        return dump_header_metadata(header, out)

    raise TypeError(f"Unsupported command: {command!r}")


def run(
    command: Command,
    errors_json: Optional[Union[str, Path]] = None,
    stream: Optional[BinaryIO] = None,
    config: Optional[DumpConfig] = None,
) -> int:
    """
    Acquire the trace, run the command, flush the output and report errors.

    Returns the process exit status. Acquisition and output I/O errors are
    not caught here.
    """
    config = config or DumpConfig()

    with acquire_trace(command.trace) as source:
        output = BufferedOutput(stream, capacity=config.output_buffer_size)
        try:
            outcome = dispatch(command, source, output, config)
        finally:
            output.close()

    return ErrorReporter(errors_json).report(outcome)
