"""
Ring Buffer Event Reader

Walks the per-CPU flyrecord buffers page by page, decodes the compressed
ring buffer event headers and yields events merged across CPUs in
timestamp order.

Event header (32 bits): type_len (5 bits) and time_delta (27 bits).
  type_len 0       data, length in the following 32-bit word (including that word)
  type_len 1..28   data, length = type_len * 4
  type_len 29      padding
  type_len 30      time extend: delta += next_word << 27
  type_len 31      absolute timestamp: next_word << 27 | time_delta
"""

import heapq
import logging
from dataclasses import dataclass
from typing import Iterator

from tracedump.core.outcome import ErrorCollector
from tracedump.traceformat.header import CpuBuffer, EventFormat, Header

logger = logging.getLogger(__name__)

TYPE_DATA_MAX = 28
TYPE_PADDING = 29
TYPE_TIME_EXTEND = 30
TYPE_TIME_STAMP = 31

TS_SHIFT = 27
TIME_DELTA_MASK = (1 << TS_SHIFT) - 1
COMMIT_MASK = (1 << 27) - 1
ABSOLUTE_TS_MASK = (1 << 59) - 1


@dataclass
class Event:
    """A decoded ring buffer record."""

    timestamp: int
    cpu: int
    format: EventFormat
    payload: bytes

    @property
    def name(self) -> str:
        return self.format.name


class EventReader:
    """
    Sequential event iterator over a mapped trace.dat file.

    Decoding problems are recorded on the ErrorCollector passed to
    events(); the reader then moves on to the next record or page.
    """

    def __init__(self, header: Header, buffer):
        self.header = header
        self.buffer = buffer
        self.byteorder = header.byteorder
        self._type_field = header.common_type_field()

    def _uint(self, pos: int, size: int) -> int:
        return int.from_bytes(self.buffer[pos:pos + size], self.byteorder)

    def _split_header(self, word: int):
        if self.byteorder == "little":
            return word & 0x1F, word >> 5
        return word >> TS_SHIFT, word & TIME_DELTA_MASK

    def events(self, errors: ErrorCollector) -> Iterator[Event]:
        """All events of all CPUs, ordered by timestamp then CPU."""
        streams = [
            self.iter_cpu(cpu_buffer, errors)
            for cpu_buffer in self.header.cpu_buffers
            if cpu_buffer.size
        ]
        return heapq.merge(*streams, key=lambda e: (e.timestamp, e.cpu))

    def iter_cpu(self, cpu_buffer: CpuBuffer, errors: ErrorCollector) -> Iterator[Event]:
        """Events of a single CPU, in ring buffer order."""
        start, size = cpu_buffer.offset, cpu_buffer.size
        if start + size > len(self.buffer):
            errors.add(
                f"CPU {cpu_buffer.cpu}: buffer {start:#x}+{size:#x} extends past "
                f"the end of the file ({len(self.buffer):#x} bytes)"
            )
            return

        page_size = self.header.page_size
        if page_size <= 0:
            errors.add(f"CPU {cpu_buffer.cpu}: invalid page size {page_size}")
            return

        end = start + size
        for page_start in range(start, end, page_size):
            yield from self._iter_page(cpu_buffer.cpu, page_start, min(page_size, end - page_start), errors)

    def _iter_page(self, cpu: int, page_start: int, page_len: int, errors: ErrorCollector) -> Iterator[Event]:
        page_header = self.header.page_header
        ts_field, commit_field = page_header.timestamp, page_header.commit
        data_offset = page_header.data.offset

        if page_len < data_offset:
            errors.add(f"CPU {cpu}: truncated page at {page_start:#x} ({page_len} bytes)")
            return

        timestamp = self._uint(page_start + ts_field.offset, ts_field.size)
        commit = self._uint(page_start + commit_field.offset, commit_field.size) & COMMIT_MASK

        capacity = page_len - data_offset
        if commit > capacity:
            errors.add(
                f"CPU {cpu}: page at {page_start:#x} claims {commit} bytes of data "
                f"but can only hold {capacity}"
            )
            return

        pos = page_start + data_offset
        end = pos + commit

        while pos < end:
            if end - pos < 4:
                errors.add(f"CPU {cpu}: truncated event header at {pos:#x}")
                return

            type_len, delta = self._split_header(self._uint(pos, 4))
            record_start = pos
            pos += 4

            needs_word = type_len in (0, TYPE_TIME_EXTEND, TYPE_TIME_STAMP) or (
                type_len == TYPE_PADDING and delta
            )
            if needs_word and pos + 4 > end:
                errors.add(f"CPU {cpu}: truncated event at {record_start:#x}")
                return

            if type_len == TYPE_PADDING:
                if delta == 0:
                    # Null padding: rest of the page is unused
                    return
                pos += self._uint(pos, 4)
                continue

            if type_len == TYPE_TIME_EXTEND:
                timestamp += (self._uint(pos, 4) << TS_SHIFT) + delta
                pos += 4
                continue

            if type_len == TYPE_TIME_STAMP:
                absolute = (self._uint(pos, 4) << TS_SHIFT) | delta
                timestamp = (timestamp & ~ABSOLUTE_TS_MASK) | absolute
                pos += 4
                continue

            timestamp += delta

            if type_len == 0:
                length = self._uint(pos, 4) - 4
                pos += 4
            else:
                length = type_len * 4

            if length < 0 or pos + length > end:
                errors.add(f"CPU {cpu}: event at {record_start:#x} overruns its page")
                return

            payload = bytes(self.buffer[pos:pos + length])
            pos += length

            event = self._make_event(cpu, timestamp, payload, record_start, errors)
            if event is not None:
                yield event

    def _make_event(self, cpu: int, timestamp: int, payload: bytes, record_start: int,
                    errors: ErrorCollector):
        type_field = self._type_field
        if len(payload) < type_field.end:
            errors.add(f"CPU {cpu}: event at {record_start:#x} is too short to hold an event id")
            return None

        event_id = int.from_bytes(payload[type_field.offset:type_field.end], self.byteorder)
        event_format = self.header.event_by_id(event_id)
        if event_format is None:
            errors.add(f"CPU {cpu}: unknown event id {event_id} at {record_start:#x} (ts={timestamp})")
            return None

        return Event(timestamp=timestamp, cpu=cpu, format=event_format, payload=payload)
