"""
Human-Readable Event Printer

Streams every event as one line of text, trace-cmd style:

       bash-1234    [001] 1234.000005678: sched_wakeup: comm=bash pid=1 prio=120
"""

import logging
from typing import TextIO

from tracedump.core.errors import EventDecodeError
from tracedump.core.outcome import ErrorCollector, Outcome
from tracedump.core.utils import format_timestamp_ns
from tracedump.traceformat.fields import decode_common_pid, decode_event_fields, render_value
from tracedump.traceformat.header import Header
from tracedump.traceformat.reader import Event, EventReader

logger = logging.getLogger(__name__)

UNKNOWN_COMM = "<...>"


def format_event(header: Header, event: Event, raw: bool = False) -> str:
    """Render a single event as a line (without trailing newline)."""
    byteorder = header.byteorder
    pid = decode_common_pid(event.format, event.payload, byteorder)
    comm = header.cmdlines.get(pid, UNKNOWN_COMM) if pid != 0 else "<idle>"
    prefix = f"{comm:>16}-{pid:<7} [{event.cpu:03d}] {format_timestamp_ns(event.timestamp)}: {event.name}:"

    if raw:
        return f"{prefix} {event.payload.hex()}"

    fields = decode_event_fields(event.format, event.payload, byteorder)
    rendered = " ".join(f"{name}={render_value(value)}" for name, value in fields.items())
    return f"{prefix} {rendered}" if rendered else prefix


def print_events(header: Header, reader: EventReader, out: TextIO, raw: bool = False) -> Outcome:
    """
    Print all events to out.

    Returns an Outcome whose value is the number of printed events. Events
    that fail to decode are skipped and reported in the ErrorSet.
    """
    errors = ErrorCollector("printing events")
    count = 0

    for event in reader.events(errors):
        try:
            line = format_event(header, event, raw=raw)
        except EventDecodeError as e:
            errors.add(f"CPU {event.cpu} ts={event.timestamp}: {e}")
            continue
        out.write(line)
        out.write("\n")
        count += 1

    logger.info(f"Printed {count} events ({len(errors)} errors)")
    return errors.outcome(value=count)
