"""
trace.dat Header Parser

Parses the header of a trace-cmd version 6 file: page and event header
formats, event format descriptions, symbol tables, options and the per-CPU
flyrecord buffer table.

File layout (integers in file byte order):
  magic             10 bytes   17 08 44 'tracing'
  version           NUL-terminated ASCII
  endianness        1 byte     0 = little, 1 = big
  long size         1 byte
  page size         4 bytes
  header_page       'header_page\\0', 8-byte size, text
  header_event      'header_event\\0', 8-byte size, text
  ftrace formats    4-byte count, (8-byte size, text)*
  event formats     4-byte system count, (system\\0, 4-byte count, (8-byte size, text)*)*
  kallsyms          4-byte size, text
  printk formats    4-byte size, text
  cmdlines          8-byte size, text
  cpus              4 bytes
  options           'options  \\0', (2-byte id, 4-byte size, data)*, id 0
  flyrecord         'flyrecord\\0', (8-byte offset, 8-byte size) per CPU
"""

import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional

from tracedump.core.errors import HeaderError

logger = logging.getLogger(__name__)

MAGIC = b"\x17\x08\x44tracing"
SUPPORTED_VERSION = 6

HEADER_PAGE_MARKER = b"header_page\0"
HEADER_EVENT_MARKER = b"header_event\0"
OPTIONS_MARKER = b"options  \0"
FLYRECORD_MARKER = b"flyrecord\0"
LATENCY_MARKER = b"latency  \0"


class OptionId(IntEnum):
    """trace.dat option identifiers."""

    DONE = 0
    DATE = 1
    CPUSTAT = 2
    BUFFER = 3
    TRACECLOCK = 4
    UNAME = 5
    HOOK = 6
    OFFSET = 7
    CPUCOUNT = 8
    VERSION = 9
    PROCMAPS = 10
    TRACEID = 11
    TIME_SHIFT = 12
    GUEST = 13


_FIELD_RE = re.compile(
    r"field:\s*(?P<decl>[^;]+);\s*"
    r"offset:\s*(?P<offset>\d+);\s*"
    r"size:\s*(?P<size>\d+);"
    r"(?:\s*signed:\s*(?P<signed>\d+);)?"
)
_DECL_RE = re.compile(r"^(?P<type>.+?)\s*\b(?P<name>[A-Za-z_]\w*)\s*(?:\[(?P<len>[^\]]*)\])?$")
_DATA_LOC_RE = re.compile(r"^(?P<type>.+?)\s*(?:\[[^\]]*\])?\s+(?P<name>[A-Za-z_]\w*)$")

# Sizes of the C types commonly found in event formats; "long" depends on the trace.
C_TYPE_SIZES = {
    "char": 1,
    "signed char": 1,
    "unsigned char": 1,
    "bool": 1,
    "_Bool": 1,
    "short": 2,
    "unsigned short": 2,
    "int": 4,
    "unsigned int": 4,
    "unsigned": 4,
    "long long": 8,
    "unsigned long long": 8,
    "u8": 1,
    "s8": 1,
    "__u8": 1,
    "__s8": 1,
    "u16": 2,
    "s16": 2,
    "__u16": 2,
    "__s16": 2,
    "u32": 4,
    "s32": 4,
    "__u32": 4,
    "__s32": 4,
    "u64": 8,
    "s64": 8,
    "__u64": 8,
    "__s64": 8,
    "pid_t": 4,
    "uid_t": 4,
    "gid_t": 4,
    "dev_t": 4,
}
LONG_TYPES = {"long", "unsigned long", "size_t", "ssize_t", "local_t"}


def type_size(type_name: str, long_size: int) -> Optional[int]:
    """Size in bytes of a scalar C type, or None if unknown."""
    type_name = " ".join(type_name.replace("const ", "").split())
    if type_name.endswith("*"):
        return long_size
    if type_name in LONG_TYPES:
        return long_size
    return C_TYPE_SIZES.get(type_name)


def type_is_unsigned(type_name: str) -> bool:
    type_name = type_name.replace("const ", "").strip()
    return (
        type_name.startswith("unsigned")
        or re.match(r"^(__)?u(8|16|32|64)$", type_name) is not None
        or type_name in ("bool", "_Bool", "size_t")
        or type_name.endswith("*")
    )


@dataclass
class FieldFormat:
    """One field of an event or page header format."""

    name: str
    declaration: str
    type_name: str
    offset: int
    size: int
    signed: bool
    array_len: Optional[int] = None  # 0 for trailing dynamic arrays
    data_loc: bool = False

    @property
    def is_array(self) -> bool:
        return self.array_len is not None

    @property
    def is_string(self) -> bool:
        base = self.type_name.replace("const ", "").strip()
        return base == "char" and (self.is_array or self.data_loc)

    @property
    def end(self) -> int:
        return self.offset + self.size

    @classmethod
    def parse(
        cls,
        decl: str,
        offset: int,
        size: int,
        signed: Optional[bool] = None,
        long_size: int = 8,
    ) -> "FieldFormat":
        """Parse a field declaration; long_size sizes the elements of symbolic-length arrays."""
        decl = " ".join(decl.split())
        data_loc = False
        array_len = None

        if decl.startswith("__data_loc"):
            data_loc = True
            m = _DATA_LOC_RE.match(decl[len("__data_loc"):].strip())
            if not m:
                raise HeaderError(f"Cannot parse field declaration '{decl}'")
            type_name = m.group("type").strip()
        else:
            m = _DECL_RE.match(decl)
            if not m:
                raise HeaderError(f"Cannot parse field declaration '{decl}'")
            type_name = m.group("type").strip()
            length = m.group("len")
            if length is not None:
                length = length.strip()
                if length.isdigit():
                    array_len = int(length)
                elif not length:
                    array_len = 0
                else:
                    elem = type_size(type_name, long_size) or 1
                    array_len = size // elem

        if signed is None:
            signed = not type_is_unsigned(type_name)

        return cls(
            name=m.group("name"),
            declaration=decl,
            type_name=type_name,
            offset=offset,
            size=size,
            signed=signed,
            array_len=array_len,
            data_loc=data_loc,
        )


def parse_fields(text: str, long_size: int = 8) -> List[FieldFormat]:
    """Parse every 'field:...;' line of a format description."""
    fields_ = []
    for m in _FIELD_RE.finditer(text):
        signed = m.group("signed")
        fields_.append(FieldFormat.parse(
            m.group("decl"),
            offset=int(m.group("offset")),
            size=int(m.group("size")),
            signed=None if signed is None else signed != "0",
            long_size=long_size,
        ))
    return fields_


@dataclass
class EventFormat:
    """Format of one event type."""

    id: int
    name: str
    system: str
    common_fields: List[FieldFormat] = field(default_factory=list)
    fields: List[FieldFormat] = field(default_factory=list)
    print_fmt: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.system}:{self.name}"

    def get_field(self, name: str) -> Optional[FieldFormat]:
        for f in self.common_fields + self.fields:
            if f.name == name:
                return f
        return None

    @classmethod
    def parse(cls, text: str, system: str, long_size: int = 8) -> "EventFormat":
        name = re.search(r"^name:\s*(\S+)", text, re.M)
        event_id = re.search(r"^ID:\s*(\d+)", text, re.M)
        if not name or not event_id:
            raise HeaderError(f"Event format in system '{system}' lacks a name or ID")

        body = text.split("format:", 1)[1] if "format:" in text else ""
        body, _, print_fmt = body.partition("print fmt:")
        all_fields = parse_fields(body, long_size)

        return cls(
            id=int(event_id.group(1)),
            name=name.group(1),
            system=system,
            common_fields=[f for f in all_fields if f.name.startswith("common_")],
            fields=[f for f in all_fields if not f.name.startswith("common_")],
            print_fmt=print_fmt.strip(),
        )


@dataclass
class PageHeaderFormat:
    """Layout of a ring buffer page header."""

    fields: Dict[str, FieldFormat]

    @property
    def timestamp(self) -> FieldFormat:
        return self.fields["timestamp"]

    @property
    def commit(self) -> FieldFormat:
        return self.fields["commit"]

    @property
    def data(self) -> FieldFormat:
        return self.fields["data"]

    @classmethod
    def parse(cls, text: str, long_size: int = 8) -> "PageHeaderFormat":
        fields_ = {f.name: f for f in parse_fields(text, long_size)}
        missing = [n for n in ("timestamp", "commit", "data") if n not in fields_]
        if missing:
            raise HeaderError(f"header_page lacks field(s): {', '.join(missing)}")
        return cls(fields=fields_)


@dataclass
class HeaderOption:
    """Raw trace.dat option."""

    id: int
    data: bytes

    @property
    def name(self) -> str:
        try:
            return OptionId(self.id).name.lower()
        except ValueError:
            return f"unknown-{self.id}"


@dataclass
class CpuBuffer:
    """Location of one CPU's ring buffer pages in the file."""

    cpu: int
    offset: int
    size: int


@dataclass
class Header:
    """Parsed trace.dat header."""

    version: int
    endianness: str
    long_size: int
    page_size: int
    page_header: PageHeaderFormat
    header_event: str
    event_formats: List[EventFormat]
    kallsyms: Dict[int, str]
    printk_formats: Dict[int, str]
    cmdlines: Dict[int, str]
    nr_cpus: int
    options: List[HeaderOption]
    cpu_buffers: List[CpuBuffer]
    file_size: int

    def __post_init__(self):
        self._by_id: Dict[int, EventFormat] = {}
        for fmt in self.event_formats:
            self._by_id.setdefault(fmt.id, fmt)

    @property
    def byteorder(self) -> str:
        return self.endianness

    def event_by_id(self, event_id: int) -> Optional[EventFormat]:
        return self._by_id.get(event_id)

    def find_events(self, name: str) -> List[EventFormat]:
        """Events matching 'name' or 'system:name'."""
        if ":" in name:
            return [f for f in self.event_formats if f.full_name == name]
        return [f for f in self.event_formats if f.name == name]

    def common_type_field(self) -> FieldFormat:
        """Field holding the event id at the start of every record."""
        for fmt in self.event_formats:
            f = fmt.get_field("common_type")
            if f is not None:
                return f
        return FieldFormat.parse("unsigned short common_type", offset=0, size=2, signed=False)


class _Cursor:
    """Sequential reader over the header bytes."""

    def __init__(self, buf):
        self.buf = buf
        self.pos = 0
        self.byteorder = "little"

    def remaining(self) -> int:
        return len(self.buf) - self.pos

    def read(self, n: int, what: str) -> bytes:
        if n < 0 or self.pos + n > len(self.buf):
            raise HeaderError(f"Truncated {what}: need {n} bytes, {self.remaining()} left", self.pos)
        data = bytes(self.buf[self.pos:self.pos + n])
        self.pos += n
        return data

    def uint(self, size: int, what: str) -> int:
        return int.from_bytes(self.read(size, what), self.byteorder)

    def cstring(self, what: str) -> str:
        end = self.buf.find(b"\0", self.pos)
        if end < 0:
            raise HeaderError(f"Unterminated {what}", self.pos)
        data = bytes(self.buf[self.pos:end])
        self.pos = end + 1
        return data.decode("utf-8", errors="replace")

    def expect(self, marker: bytes, what: str) -> None:
        start = self.pos
        if self.read(len(marker), what) != marker:
            raise HeaderError(f"Missing {what} marker", start)

    def section(self, size_bytes: int, what: str) -> str:
        size = self.uint(size_bytes, f"{what} size")
        return self.read(size, what).decode("utf-8", errors="replace")


def _parse_kallsyms(text: str) -> Dict[int, str]:
    symbols = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        try:
            symbols[int(parts[0], 16)] = parts[2]
        except ValueError:
            continue
    return symbols


def _parse_printk(text: str) -> Dict[int, str]:
    formats = {}
    for line in text.splitlines():
        addr, sep, fmt = line.partition(":")
        if not sep:
            continue
        try:
            formats[int(addr.strip(), 16)] = fmt.strip().strip('"')
        except ValueError:
            continue
    return formats


def _parse_cmdlines(text: str) -> Dict[int, str]:
    cmdlines = {}
    for line in text.splitlines():
        pid, _, comm = line.strip().partition(" ")
        if pid.isdigit():
            cmdlines[int(pid)] = comm
    return cmdlines


def parse_header(buf) -> Header:
    """
    Parse a trace.dat header from a bytes-like buffer (bytes or mmap).

    Raises:
        HeaderError: if the header is malformed or unsupported
    """
    cur = _Cursor(buf)

    if cur.read(len(MAGIC), "magic") != MAGIC:
        raise HeaderError("Not a trace.dat file (bad magic)", 0)

    version_str = cur.cstring("version")
    try:
        version = int(version_str)
    except ValueError:
        raise HeaderError(f"Invalid version string '{version_str}'", cur.pos)
    if version != SUPPORTED_VERSION:
        raise HeaderError(f"Unsupported trace.dat version {version}")

    endian = cur.uint(1, "endianness")
    if endian not in (0, 1):
        raise HeaderError(f"Invalid endianness byte {endian}", cur.pos - 1)
    cur.byteorder = "big" if endian else "little"

    long_size = cur.uint(1, "long size")
    page_size = cur.uint(4, "page size")

    cur.expect(HEADER_PAGE_MARKER, "header_page")
    page_header = PageHeaderFormat.parse(cur.section(8, "header_page"), long_size)

    cur.expect(HEADER_EVENT_MARKER, "header_event")
    header_event = cur.section(8, "header_event")

    event_formats: List[EventFormat] = []
    nr_ftrace = cur.uint(4, "ftrace format count")
    for _ in range(nr_ftrace):
        event_formats.append(EventFormat.parse(cur.section(8, "ftrace format"), "ftrace", long_size))

    nr_systems = cur.uint(4, "event system count")
    for _ in range(nr_systems):
        system = cur.cstring("event system name")
        count = cur.uint(4, f"{system} format count")
        for _ in range(count):
            event_formats.append(EventFormat.parse(cur.section(8, f"{system} format"), system, long_size))

    kallsyms = _parse_kallsyms(cur.section(4, "kallsyms"))
    printk_formats = _parse_printk(cur.section(4, "printk formats"))
    cmdlines = _parse_cmdlines(cur.section(8, "cmdlines"))
    nr_cpus = cur.uint(4, "cpu count")

    options: List[HeaderOption] = []
    marker_pos = cur.pos
    marker = cur.read(10, "data section marker")
    if marker == OPTIONS_MARKER:
        while True:
            option_id = cur.uint(2, "option id")
            if option_id == OptionId.DONE:
                break
            size = cur.uint(4, "option size")
            options.append(HeaderOption(id=option_id, data=cur.read(size, f"option {option_id}")))
        marker_pos = cur.pos
        marker = cur.read(10, "data section marker")

    if marker == LATENCY_MARKER:
        raise HeaderError("Latency traces are not supported", marker_pos)
    if marker != FLYRECORD_MARKER:
        raise HeaderError(f"Unknown data section {marker!r}", marker_pos)

    cpu_buffers = []
    for cpu in range(nr_cpus):
        offset = cur.uint(8, f"CPU {cpu} buffer offset")
        size = cur.uint(8, f"CPU {cpu} buffer size")
        cpu_buffers.append(CpuBuffer(cpu=cpu, offset=offset, size=size))

    logger.debug(
        f"Parsed trace.dat v{version} header: {len(event_formats)} event formats, "
        f"{nr_cpus} CPUs, page size {page_size}"
    )

    return Header(
        version=version,
        endianness=cur.byteorder,
        long_size=long_size,
        page_size=page_size,
        page_header=page_header,
        header_event=header_event,
        event_formats=event_formats,
        kallsyms=kallsyms,
        printk_formats=printk_formats,
        cmdlines=cmdlines,
        nr_cpus=nr_cpus,
        options=options,
        cpu_buffers=cpu_buffers,
        file_size=len(buf),
    )
