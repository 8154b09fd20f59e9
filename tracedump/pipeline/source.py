"""
Trace Source Acquisition
Opens a trace.dat file, maps it read-only and parses its header.
"""

import logging
import mmap
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

from tracedump.core.errors import TraceIOError
from tracedump.traceformat.header import Header, parse_header
from tracedump.traceformat.reader import EventReader

logger = logging.getLogger(__name__)


@dataclass
class TraceSource:
    """An open, memory-mapped trace file with its parsed header."""

    path: Path
    file: BinaryIO
    buffer: mmap.mmap
    header: Header
    reader: EventReader

    def close(self) -> None:
        self.buffer.close()
        self.file.close()

    def __enter__(self) -> "TraceSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def acquire_trace(path: Union[str, Path]) -> TraceSource:
    """
    Open and map a trace file, then parse its header.

    Raises:
        OSError: the file cannot be opened
        TraceIOError: the file cannot be memory-mapped
        HeaderError: the header is malformed
    """
    path = Path(path)
    f = open(path, "rb")

    try:
        try:
            buffer = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as e:
            raise TraceIOError(f"Cannot map {path}: {e}") from e

        try:
            header = parse_header(buffer)
        except Exception:
            buffer.close()
            raise
    except Exception:
        f.close()
        raise

    logger.info(f"Opened {path} ({len(buffer)} bytes, {header.nr_cpus} CPUs)")
    return TraceSource(
        path=path,
        file=f,
        buffer=buffer,
        header=header,
        reader=EventReader(header, buffer),
    )
