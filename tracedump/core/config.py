"""
tracedump Configuration
Defaults for the dump pipelines, optionally overridden from a YAML file.

Example config file:

    chunk_size: 131072
    compression: zstd
    output_dir: ./parquet
    output_buffer_size: 4194304
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from tracedump.core.errors import ConfigError
from tracedump.core.schema import DEFAULT_CHUNK_SIZE, CompressionScheme

logger = logging.getLogger(__name__)


@dataclass
class DumpConfig:
    """Configuration for a tracedump invocation."""

    # Output stream
    output_buffer_size: int = 1024 * 1024

    # Parquet export
    chunk_size: int = DEFAULT_CHUNK_SIZE
    compression: CompressionScheme = CompressionScheme.NONE
    output_dir: str = "."

    # Minimum spacing between exported timestamps when uniqueness is requested
    timestamp_gap: int = 2

    def __post_init__(self):
        try:
            self.compression = CompressionScheme.parse(self.compression)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        for name in ("output_buffer_size", "chunk_size", "timestamp_gap"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        self.output_dir = str(self.output_dir)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DumpConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in d.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output_buffer_size": self.output_buffer_size,
            "chunk_size": self.chunk_size,
            "compression": self.compression.value,
            "output_dir": self.output_dir,
            "timestamp_gap": self.timestamp_gap,
        }


def load_config(path: Union[str, Path]) -> DumpConfig:
    """Load a DumpConfig from a YAML file."""
    path = Path(path)

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    config = DumpConfig.from_dict(data)
    logger.info(f"Loaded config from {path}")
    return config
