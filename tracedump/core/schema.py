"""
tracedump Command Schema
Immutable command variants, one per transformation mode, and the Parquet compression choice.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

# Rows per Parquet row group. Chunks that are too small hurt both write
# throughput and downstream reads; 16 Ki rows is where performance falls off.
DEFAULT_CHUNK_SIZE = 64 * 1024


class CompressionScheme(Enum):
    """Compression applied to each Parquet chunk."""

    NONE = "none"
    LZ4 = "lz4"
    SNAPPY = "snappy"
    ZSTD = "zstd"

    @classmethod
    def parse(cls, value: Optional[str]) -> "CompressionScheme":
        """Map a CLI/config string (or None) to a scheme."""
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown compression '{value}' (expected one of: {choices})")

    def to_parquet(self) -> str:
        """Codec name understood by pyarrow.parquet."""
        return self.value


@dataclass(frozen=True)
class HumanReadableCommand:
    """Print every event as text."""

    trace: Path
    raw: bool = False


@dataclass(frozen=True)
class ParquetCommand:
    """Export events as one Parquet file per event type."""

    trace: Path
    events: Optional[Tuple[str, ...]] = None
    unique_timestamps: bool = False
    compression: CompressionScheme = CompressionScheme.NONE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    output_dir: Path = Path(".")

    def __post_init__(self):
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


@dataclass(frozen=True)
class CheckHeaderCommand:
    """Check the header for internal consistency."""

    trace: Path


@dataclass(frozen=True)
class MetadataCommand:
    """Dump the header metadata."""

    trace: Path
