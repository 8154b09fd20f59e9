"""
Parquet Event Export

Columnar export of trace events: one Parquet file per event type, written
in row groups of a fixed number of rows, plus a meta.json summary.

Columns of every file:
  common_ts   uint64   event timestamp (after the timestamp transform)
  common_cpu  uint32   CPU the event was recorded on
  common_pid  int32    pid from the common event fields
  <field>...           one column per event field
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

import numpy as np
import pyarrow as pa
import pyarrow.parquet as pq

from tracedump.core.errors import TraceFormatError
from tracedump.core.outcome import ErrorCollector, Outcome
from tracedump.core.schema import DEFAULT_CHUNK_SIZE, CompressionScheme
from tracedump.core.utils import safe_json_dump
from tracedump.traceformat.fields import INT_SIZES, decode_common_pid, decode_event_fields
from tracedump.traceformat.header import EventFormat, FieldFormat, Header
from tracedump.traceformat.metadata import header_metadata
from tracedump.traceformat.reader import EventReader

logger = logging.getLogger(__name__)

META_FILENAME = "meta.json"

ARROW_INT_TYPES = {
    (1, True): pa.int8(),
    (1, False): pa.uint8(),
    (2, True): pa.int16(),
    (2, False): pa.uint16(),
    (4, True): pa.int32(),
    (4, False): pa.uint32(),
    (8, True): pa.int64(),
    (8, False): pa.uint64(),
}

NUMPY_INT_TYPES = {
    pa.int8(): np.int8,
    pa.uint8(): np.uint8,
    pa.int16(): np.int16,
    pa.uint16(): np.uint16,
    pa.int32(): np.int32,
    pa.uint32(): np.uint32,
    pa.int64(): np.int64,
    pa.uint64(): np.uint64,
}

COMMON_COLUMNS = [
    ("common_ts", pa.uint64()),
    ("common_cpu", pa.uint32()),
    ("common_pid", pa.int32()),
]

TimestampTransform = Callable[[int], int]


def field_arrow_type(f: FieldFormat) -> pa.DataType:
    """Arrow type matching the value produced by decode_field()."""
    if f.is_string:
        return pa.string()
    if f.data_loc or f.array_len == 0:
        return pa.binary()
    if f.is_array:
        elem_size = f.size // f.array_len
        if elem_size in INT_SIZES:
            return pa.list_(ARROW_INT_TYPES[(elem_size, f.signed)])
        return pa.binary()
    if f.size in INT_SIZES:
        return ARROW_INT_TYPES[(f.size, f.signed)]
    return pa.binary()


def event_schema(event_format: EventFormat) -> pa.Schema:
    columns = list(COMMON_COLUMNS)
    columns.extend((f.name, field_arrow_type(f)) for f in event_format.fields)
    return pa.schema(columns)


class EventTableWriter:
    """
    Buffers rows of one event type and writes them in fixed-size row groups.

    A row group is emitted every `chunk_size` rows; the remainder is written
    on close(). Nothing is created on disk until the first row group.
    """

    def __init__(
        self,
        path: Path,
        event_format: EventFormat,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        compression: CompressionScheme = CompressionScheme.NONE,
    ):
        self.path = Path(path)
        self.event_format = event_format
        self.chunk_size = chunk_size
        self.compression = compression
        self.schema = event_schema(event_format)

        self.nr_rows = 0
        self.nr_row_groups = 0

        self._writer: Optional[pq.ParquetWriter] = None
        self._columns: Dict[str, List[Any]] = {name: [] for name in self.schema.names}
        self._pending = 0

    def append(self, timestamp: int, cpu: int, pid: int, values: Dict[str, Any]) -> None:
        self._columns["common_ts"].append(timestamp)
        self._columns["common_cpu"].append(cpu)
        self._columns["common_pid"].append(pid)
        for f in self.event_format.fields:
            self._columns[f.name].append(values[f.name])

        self._pending += 1
        if self._pending >= self.chunk_size:
            self.flush()

    def _to_array(self, name: str, type_: pa.DataType) -> pa.Array:
        values = self._columns[name]
        np_type = NUMPY_INT_TYPES.get(type_)
        if np_type is not None:
            return pa.array(np.asarray(values, dtype=np_type), type=type_)
        return pa.array(values, type=type_)

    def flush(self) -> None:
        """Write buffered rows as one row group."""
        if not self._pending:
            return

        arrays = [self._to_array(f.name, f.type) for f in self.schema]
        table = pa.Table.from_arrays(arrays, schema=self.schema)

        if self._writer is None:
            self._writer = pq.ParquetWriter(
                str(self.path),
                self.schema,
                compression=self.compression.to_parquet(),
            )
        self._writer.write_table(table, row_group_size=self.chunk_size)

        self.nr_rows += self._pending
        self.nr_row_groups += 1
        self._columns = {name: [] for name in self.schema.names}
        self._pending = 0

    def close(self) -> None:
        try:
            self.flush()
        finally:
            if self._writer is not None:
                self._writer.close()
                self._writer = None

    def summary(self) -> Dict[str, Any]:
        return {
            "path": self.path.name,
            "nr-rows": self.nr_rows,
            "nr-row-groups": self.nr_row_groups,
        }


def select_event_ids(header: Header, events: Optional[Iterable[str]]) -> Optional[Set[int]]:
    """Ids of the requested events, or None when every event is wanted."""
    if events is None:
        return None

    selected: Set[int] = set()
    for name in events:
        matches = header.find_events(name)
        if not matches:
            logger.warning(f"Requested event '{name}' is not present in the trace")
        selected.update(fmt.id for fmt in matches)
    return selected


def identity_timestamp(ts: int) -> int:
    return ts


def dump_events(
    header: Header,
    reader: EventReader,
    make_ts: TimestampTransform = identity_timestamp,
    events: Optional[Iterable[str]] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    compression: CompressionScheme = CompressionScheme.NONE,
    output_dir: Union[str, Path] = ".",
) -> Outcome:
    """
    Export events to one Parquet file per event type in output_dir.

    Args:
        make_ts: transform applied to each exported event timestamp, in stream order
        events: event names ('name' or 'system:name') to export; None exports all

    Returns:
        Outcome whose value maps each exported event name to its file summary
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    errors = ErrorCollector("exporting events to Parquet")
    selected = select_event_ids(header, events)
    byteorder = header.byteorder

    writers: Dict[int, EventTableWriter] = {}
    used_names: Set[str] = set()

    try:
        for event in reader.events(errors):
            fmt = event.format
            if selected is not None and fmt.id not in selected:
                continue

            try:
                values = decode_event_fields(fmt, event.payload, byteorder)
                pid = decode_common_pid(fmt, event.payload, byteorder)
                ts = make_ts(event.timestamp)
            except TraceFormatError as e:
                errors.add(f"CPU {event.cpu} ts={event.timestamp}: {e}")
                continue

            writer = writers.get(fmt.id)
            if writer is None:
                stem = fmt.name if fmt.name not in used_names else f"{fmt.system}-{fmt.name}"
                used_names.add(stem)
                writer = EventTableWriter(
                    output_dir / f"{stem}.parquet",
                    fmt,
                    chunk_size=chunk_size,
                    compression=compression,
                )
                writers[fmt.id] = writer

            writer.append(ts, event.cpu, pid, values)
    finally:
        for writer in writers.values():
            writer.close()

    exported = {w.path.stem: w.summary() for w in writers.values()}

    meta, option_errors = header_metadata(header)
    for problem in option_errors:
        logger.warning(problem)
    safe_json_dump({"events": exported, "header": meta}, output_dir / META_FILENAME)

    logger.info(f"Exported {sum(w.nr_rows for w in writers.values())} rows in {len(writers)} files")
    return errors.outcome(value=exported)
