"""
Header Consistency Checker

Cross-checks the parsed header against itself: page header layout, CPU
buffer table, event ids and the field layout of every event format.
Each problem is written as one line to the output stream.
"""

import logging
from typing import Dict, Iterator, List, TextIO, Tuple

from tracedump.core.outcome import ErrorCollector, Outcome
from tracedump.traceformat.header import EventFormat, FieldFormat, Header, type_is_unsigned, type_size

logger = logging.getLogger(__name__)


def _check_page_header(header: Header) -> Iterator[str]:
    page = header.page_header

    if page.timestamp.size != 8:
        yield f"header_page: timestamp field has size {page.timestamp.size}, expected 8"

    if page.commit.size != header.long_size:
        yield (
            f"header_page: commit field has size {page.commit.size} "
            f"but the trace long size is {header.long_size}"
        )

    if page.data.offset < page.commit.end:
        yield (
            f"header_page: data starts at offset {page.data.offset}, "
            f"inside the commit field ending at {page.commit.end}"
        )

    if page.data.end > header.page_size:
        yield (
            f"header_page: data field ends at {page.data.end}, "
            f"beyond the page size {header.page_size}"
        )


def _check_cpu_buffers(header: Header) -> Iterator[str]:
    if len(header.cpu_buffers) != header.nr_cpus:
        yield f"{len(header.cpu_buffers)} CPU buffers for {header.nr_cpus} CPUs"

    for buf in header.cpu_buffers:
        if buf.offset + buf.size > header.file_size:
            yield (
                f"CPU {buf.cpu}: buffer {buf.offset:#x}+{buf.size:#x} extends past "
                f"the end of the file ({header.file_size:#x} bytes)"
            )
        if header.page_size > 0 and buf.size % header.page_size:
            yield f"CPU {buf.cpu}: buffer size {buf.size} is not a multiple of the page size"


def _check_field(fmt: EventFormat, f: FieldFormat, long_size: int) -> Iterator[str]:
    where = f"{fmt.full_name}: field '{f.name}'"

    if f.data_loc:
        if f.size != 4:
            yield f"{where}: __data_loc field has size {f.size}, expected 4"
        return

    elem_size = type_size(f.type_name, long_size)
    if elem_size is not None:
        if f.is_array and f.array_len:
            expected = elem_size * f.array_len
            if f.size != expected:
                yield f"{where}: size {f.size} does not match {f.array_len} x {f.type_name} ({expected} bytes)"
        elif not f.is_array and f.size != elem_size:
            yield f"{where}: size {f.size} does not match type '{f.type_name}' ({elem_size} bytes)"

    base = f.type_name.replace("const ", "").strip()
    if base not in ("char", "signed char") and not f.is_array:
        if type_is_unsigned(f.type_name) and f.signed:
            yield f"{where}: type '{f.type_name}' is unsigned but flagged signed"
        elif (base.startswith("signed") or base in ("int", "long", "short", "long long")) and not f.signed:
            yield f"{where}: type '{f.type_name}' is signed but flagged unsigned"


def _check_layout(fmt: EventFormat) -> Iterator[str]:
    placed = sorted(
        (f for f in fmt.common_fields + fmt.fields if f.size or f.data_loc),
        key=lambda f: f.offset,
    )
    for prev, cur in zip(placed, placed[1:]):
        if cur.offset < prev.end:
            yield (
                f"{fmt.full_name}: field '{cur.name}' at offset {cur.offset} overlaps "
                f"'{prev.name}' ({prev.offset}..{prev.end})"
            )


def _check_events(header: Header) -> Iterator[str]:
    seen: Dict[int, EventFormat] = {}
    reference: List[Tuple[str, int, int]] = []
    reference_name = None

    for fmt in header.event_formats:
        if fmt.id in seen:
            yield f"event id {fmt.id} is used by both {seen[fmt.id].full_name} and {fmt.full_name}"
        else:
            seen[fmt.id] = fmt

        common = [(f.name, f.offset, f.size) for f in fmt.common_fields]
        if reference_name is None:
            reference, reference_name = common, fmt.full_name
        elif common != reference:
            yield f"{fmt.full_name}: common fields differ from those of {reference_name}"

        yield from _check_layout(fmt)
        for f in fmt.common_fields + fmt.fields:
            yield from _check_field(fmt, f, header.long_size)


def iter_header_problems(header: Header) -> Iterator[str]:
    """Yield a description of every inconsistency found in the header."""
    if header.long_size not in (4, 8):
        yield f"long size is {header.long_size}, expected 4 or 8"

    if header.page_size <= 0 or header.page_size & (header.page_size - 1):
        yield f"page size {header.page_size} is not a power of two"

    yield from _check_page_header(header)
    yield from _check_cpu_buffers(header)
    yield from _check_events(header)


def check_header(header: Header, out: TextIO) -> Outcome:
    """Write header findings to out; fails if anything is inconsistent."""
    errors = ErrorCollector("checking the header")

    for problem in iter_header_problems(header):
        out.write(f"{problem}\n")
        errors.add(problem)

    if not errors:
        out.write("Header is consistent\n")

    logger.info(f"Header check found {len(errors)} problem(s)")
    return errors.outcome(value=len(errors))
