"""
Trace-Dump Pipeline

Acquire -> dispatch (one of four transformations) -> report.
"""

from tracedump.pipeline.source import TraceSource, acquire_trace
from tracedump.pipeline.timestamps import TimestampNormalizer
from tracedump.pipeline.reporter import ErrorReporter, EXIT_SUCCESS, EXIT_FAILURE
from tracedump.pipeline.dispatcher import BufferedOutput, dispatch, run

__all__ = [
    "TraceSource",
    "acquire_trace",
    "TimestampNormalizer",
    "ErrorReporter",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "BufferedOutput",
    "dispatch",
    "run",
]
