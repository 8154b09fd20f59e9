"""
tracedump Utilities
Logging setup, atomic JSON writes and timestamp formatting.
"""

import json
import logging
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger(__name__)

NS_PER_SEC = 1_000_000_000


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging on stderr; stdout is reserved for dump output."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def safe_json_dump(data: Any, path: Union[str, Path], indent: int = 2) -> None:
    """Safely write JSON to file with atomic write pattern."""
    path = Path(path)
    temp_path = path.with_name(path.name + ".tmp")

    try:
        with open(temp_path, "w") as f:
            json.dump(data, f, indent=indent, default=str)
        temp_path.replace(path)
    except Exception as e:
        logger.error(f"Failed to write JSON to {path}: {e}")
        if temp_path.exists():
            temp_path.unlink()
        raise


def format_timestamp_ns(ts: int) -> str:
    """Render a nanosecond timestamp as seconds with nanosecond precision."""
    return f"{ts // NS_PER_SEC}.{ts % NS_PER_SEC:09d}"
