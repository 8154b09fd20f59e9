"""
tracedump - trace-cmd trace.dat conversion and diagnostics.

Converts a raw, memory-mapped trace.dat capture into a human-readable dump,
a chunked Parquet archive, a header-validity report or the raw header
metadata, reporting every partial failure along the way.
"""

__version__ = "1.0.0"

from tracedump.core.errors import (
    TraceDumpError,
    TraceIOError,
    TraceFormatError,
    HeaderError,
    EventDecodeError,
    TimestampOrderError,
)
from tracedump.core.outcome import ErrorSet, Outcome, ErrorCollector
from tracedump.core.schema import (
    CompressionScheme,
    HumanReadableCommand,
    ParquetCommand,
    CheckHeaderCommand,
    MetadataCommand,
)
from tracedump.core.config import DumpConfig, load_config
from tracedump.pipeline import (
    TraceSource,
    acquire_trace,
    TimestampNormalizer,
    BufferedOutput,
    dispatch,
    run,
    ErrorReporter,
)

__all__ = [
    # Errors
    "TraceDumpError",
    "TraceIOError",
    "TraceFormatError",
    "HeaderError",
    "EventDecodeError",
    "TimestampOrderError",
    # Outcome model
    "ErrorSet",
    "Outcome",
    "ErrorCollector",
    # Commands
    "CompressionScheme",
    "HumanReadableCommand",
    "ParquetCommand",
    "CheckHeaderCommand",
    "MetadataCommand",
    # Configuration
    "DumpConfig",
    "load_config",
    # Pipeline
    "TraceSource",
    "acquire_trace",
    "TimestampNormalizer",
    "BufferedOutput",
    "dispatch",
    "run",
    "ErrorReporter",
    # Version
    "__version__",
]
