"""tracedump core module - errors, outcomes, command schema and configuration."""

from tracedump.core.outcome import ErrorSet, Outcome, ErrorCollector
from tracedump.core.schema import CompressionScheme

__all__ = ["ErrorSet", "Outcome", "ErrorCollector", "CompressionScheme"]
