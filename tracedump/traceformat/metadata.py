"""
Header Metadata Dumper
Extracts the descriptive parts of a trace.dat header as a JSON document.
"""

import json
import logging
import re
from typing import Any, Dict, List, TextIO, Tuple

from tracedump.core.outcome import ErrorCollector, Outcome
from tracedump.traceformat.header import Header, HeaderOption, OptionId

logger = logging.getLogger(__name__)

_SELECTED_CLOCK_RE = re.compile(r"\[(\S+)\]")


def _option_string(option: HeaderOption) -> str:
    return option.data.split(b"\0", 1)[0].decode("utf-8", errors="replace").strip()


def _option_int(option: HeaderOption, size: int, byteorder: str) -> int:
    if len(option.data) != size:
        raise ValueError(f"option {option.name} has {len(option.data)} bytes, expected {size}")
    return int.from_bytes(option.data, byteorder)


def _decode_options(header: Header) -> Tuple[Dict[str, Any], List[str]]:
    meta: Dict[str, Any] = {}
    errors: List[str] = []
    buffers = []
    cpu_stats = []

    for option in header.options:
        try:
            if option.id == OptionId.TRACECLOCK:
                text = _option_string(option)
                m = _SELECTED_CLOCK_RE.search(text)
                meta["trace-clock"] = m.group(1) if m else text
            elif option.id == OptionId.UNAME:
                meta["uname"] = _option_string(option)
            elif option.id == OptionId.VERSION:
                meta["trace-cmd-version"] = _option_string(option)
            elif option.id == OptionId.DATE:
                meta["date"] = _option_string(option)
            elif option.id == OptionId.OFFSET:
                meta["timestamp-offset"] = _option_string(option)
            elif option.id == OptionId.CPUSTAT:
                cpu_stats.append(_option_string(option))
            elif option.id == OptionId.BUFFER:
                if len(option.data) < 9:
                    raise ValueError(f"option buffer has only {len(option.data)} bytes")
                buffers.append(_option_string(HeaderOption(option.id, option.data[8:])))
            elif option.id == OptionId.CPUCOUNT:
                meta["cpu-count"] = _option_int(option, 4, header.byteorder)
            elif option.id == OptionId.TRACEID:
                meta["trace-id"] = _option_int(option, 8, header.byteorder)
        except ValueError as e:
            errors.append(f"Cannot decode header option {option.name}: {e}")

    if buffers:
        meta["buffers"] = buffers
    if cpu_stats:
        meta["cpu-stats"] = cpu_stats

    return meta, errors


def header_metadata(header: Header) -> Tuple[Dict[str, Any], List[str]]:
    """
    Build the metadata dictionary of a header.

    Returns:
        (metadata, errors) where errors lists options that failed to decode
    """
    meta: Dict[str, Any] = {
        "version": header.version,
        "endianness": header.endianness,
        "long-size": header.long_size,
        "page-size": header.page_size,
        "nr-cpus": header.nr_cpus,
        "available-events": sorted(fmt.full_name for fmt in header.event_formats),
        "nr-kallsyms": len(header.kallsyms),
        "nr-printk-formats": len(header.printk_formats),
        "nr-cmdlines": len(header.cmdlines),
    }
    options, errors = _decode_options(header)
    meta.update(options)
    return meta, errors


def dump_header_metadata(header: Header, out: TextIO) -> Outcome:
    """Write the header metadata to out as JSON."""
    errors = ErrorCollector("dumping header metadata")
    meta, option_errors = header_metadata(header)
    errors.extend(option_errors)

    out.write(json.dumps(meta, indent=2, sort_keys=True))
    out.write("\n")
    return errors.outcome(value=meta)
