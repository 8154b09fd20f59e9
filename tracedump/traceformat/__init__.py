"""
trace.dat Format Library

Header parsing, ring buffer decoding and the four trace transformations:
human-readable printing, header checking, metadata dumping and Parquet export.
"""

from tracedump.traceformat.header import (
    Header,
    EventFormat,
    FieldFormat,
    PageHeaderFormat,
    CpuBuffer,
    HeaderOption,
    OptionId,
    parse_header,
)
from tracedump.traceformat.reader import Event, EventReader
from tracedump.traceformat.printer import print_events, format_event
from tracedump.traceformat.check import check_header, iter_header_problems
from tracedump.traceformat.metadata import dump_header_metadata, header_metadata
from tracedump.traceformat.parquet import dump_events, EventTableWriter

__all__ = [
    # Header
    "Header",
    "EventFormat",
    "FieldFormat",
    "PageHeaderFormat",
    "CpuBuffer",
    "HeaderOption",
    "OptionId",
    "parse_header",
    # Events
    "Event",
    "EventReader",
    # Transformations
    "print_events",
    "format_event",
    "check_header",
    "iter_header_problems",
    "dump_header_metadata",
    "header_metadata",
    "dump_events",
    "EventTableWriter",
]
