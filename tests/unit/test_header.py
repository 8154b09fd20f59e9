"""
tracedump Unit Tests - Header Parsing, Checking and Metadata
"""

import io
import json

import pytest

from tracebuilder import OVERLAPPING_EVENT, SCHED_SWITCH, DEFAULT_EVENTS, EventSpec, FieldSpec, TraceBuilder
from tracedump.core.errors import HeaderError
from tracedump.traceformat.check import check_header, iter_header_problems
from tracedump.traceformat.header import FieldFormat, OptionId, parse_header, type_size
from tracedump.traceformat.metadata import dump_header_metadata, header_metadata


@pytest.fixture
def header(builder):
    return parse_header(builder.build())


class TestFieldFormat:
    """Tests for field declaration parsing."""

    def test_scalar(self):
        f = FieldFormat.parse("unsigned int flags", offset=8, size=4)

        assert f.name == "flags"
        assert f.type_name == "unsigned int"
        assert not f.signed
        assert not f.is_array
        assert f.end == 12

    def test_char_array_is_string(self):
        f = FieldFormat.parse("char comm[16]", offset=8, size=16, signed=True)

        assert f.array_len == 16
        assert f.is_string

    def test_int_array(self):
        f = FieldFormat.parse("u32 cpus[4]", offset=8, size=16)

        assert f.array_len == 4
        assert not f.is_string

    def test_trailing_array(self):
        f = FieldFormat.parse("unsigned long caller[]", offset=8, size=0)

        assert f.array_len == 0

    def test_data_loc(self):
        f = FieldFormat.parse("__data_loc char[] filename", offset=8, size=4, signed=True)

        assert f.data_loc
        assert f.name == "filename"
        assert f.is_string

    def test_unparsable(self):
        with pytest.raises(HeaderError):
            FieldFormat.parse("[]", offset=0, size=4)

    def test_type_size(self):
        assert type_size("long", 4) == 4
        assert type_size("unsigned long", 8) == 8
        assert type_size("void *", 8) == 8
        assert type_size("const char", 8) == 1
        assert type_size("struct foo", 8) is None

    @pytest.mark.parametrize("decl,size,long_size,array_len", [
        ("unsigned long cpus[NR_CPUS]", 32, 8, 4),
        ("unsigned long cpus[NR_CPUS]", 32, 4, 8),
        ("void * stack[STACK_DEPTH]", 16, 8, 2),
        ("u16 ids[MAX_IDS]", 8, 8, 4),
    ])
    def test_symbolic_array_length(self, decl, size, long_size, array_len):
        f = FieldFormat.parse(decl, offset=8, size=size, long_size=long_size)

        assert f.array_len == array_len

    def test_symbolic_long_array_from_header(self):
        spec = EventSpec(402, "cpu_mask", "test", [
            FieldSpec("unsigned long mask[NR_WORDS]", "mask", 8, 16, 0),
        ], size=24)
        header = parse_header(TraceBuilder(events=[spec]).build())
        mask = header.event_by_id(402).fields[0]

        assert mask.array_len == 2
        assert list(iter_header_problems(header)) == []


class TestParseHeader:
    """Tests for parse_header."""

    def test_basic_fields(self, header):
        assert header.version == 6
        assert header.endianness == "little"
        assert header.long_size == 8
        assert header.page_size == 4096
        assert header.nr_cpus == 2

    def test_page_header(self, header):
        page = header.page_header

        assert page.timestamp.offset == 0 and page.timestamp.size == 8
        assert page.commit.offset == 8 and page.commit.size == 8
        assert page.data.offset == 16

    def test_event_formats(self, header):
        assert [fmt.full_name for fmt in header.event_formats] == [
            "sched:sched_switch", "sched:sched_wakeup", "sched:sched_process_exec",
        ]

        wakeup = header.event_by_id(317)
        assert wakeup.name == "sched_wakeup"
        assert [f.name for f in wakeup.common_fields] == [
            "common_type", "common_flags", "common_preempt_count", "common_pid",
        ]
        assert [f.name for f in wakeup.fields] == ["comm", "pid", "prio", "target_cpu"]
        assert wakeup.print_fmt == '"sched_wakeup"'

    def test_find_events(self, header):
        assert [f.id for f in header.find_events("sched_switch")] == [316]
        assert [f.id for f in header.find_events("sched:sched_wakeup")] == [317]
        assert header.find_events("irq:sched_wakeup") == []
        assert header.find_events("nope") == []

    def test_tables(self, header):
        assert header.cmdlines == {1: "systemd", 1234: "bash"}
        assert header.kallsyms[0xFFFFFFFF81000000] == "_stext"
        assert header.printk_formats[0xFFFFFFFF82000000] == "hello %d\\n"

    def test_options(self, header):
        assert [o.id for o in header.options] == [
            OptionId.TRACECLOCK, OptionId.UNAME, OptionId.VERSION, OptionId.TRACEID,
        ]
        assert [o.data for o in header.options if o.id == OptionId.VERSION] == [b"3.1.6\0"]
        assert header.options[0].name == "traceclock"

    def test_cpu_buffers(self, header):
        assert [b.cpu for b in header.cpu_buffers] == [0, 1]
        for buf in header.cpu_buffers:
            assert buf.offset % header.page_size == 0
            assert buf.size == header.page_size

    def test_big_endian(self):
        header = parse_header(TraceBuilder(byteorder="big").build())

        assert header.endianness == "big"
        assert header.page_size == 4096

    def test_bad_magic(self, builder):
        data = b"\x00" + builder.build()[1:]

        with pytest.raises(HeaderError, match="magic"):
            parse_header(data)

    def test_unsupported_version(self, builder):
        data = builder.build().replace(b"tracing6\0", b"tracing7\0", 1)

        with pytest.raises(HeaderError, match="version 7"):
            parse_header(data)

    def test_truncated(self, builder):
        with pytest.raises(HeaderError, match="Truncated"):
            parse_header(builder.build()[:200])

    def test_latency_trace(self, builder):
        data = builder.build().replace(b"flyrecord\0", b"latency  \0", 1)

        with pytest.raises(HeaderError, match="Latency"):
            parse_header(data)

    def test_duplicate_id_keeps_first_format(self):
        dup = EventSpec(316, "other_switch", "other", [], size=8)
        header = parse_header(TraceBuilder(events=DEFAULT_EVENTS + [dup]).build())

        assert header.event_by_id(316).name == "sched_switch"


class TestCheckHeader:
    """Tests for the header consistency checker."""

    def test_consistent_header(self, header):
        out = io.StringIO()
        outcome = check_header(header, out)

        assert outcome.ok
        assert outcome.value == 0
        assert out.getvalue() == "Header is consistent\n"

    def test_commit_size_mismatch(self):
        header = parse_header(TraceBuilder(commit_size=4).build())
        problems = list(iter_header_problems(header))

        assert len(problems) == 1
        assert "commit field has size 4" in problems[0]

    def test_overlapping_fields(self):
        header = parse_header(TraceBuilder(events=[SCHED_SWITCH, OVERLAPPING_EVENT]).build())
        problems = list(iter_header_problems(header))

        assert any("'b' at offset 10 overlaps 'a'" in p for p in problems)

    def test_duplicate_event_id(self):
        dup = EventSpec(316, "other_switch", "other", [], size=8)
        header = parse_header(TraceBuilder(events=[SCHED_SWITCH, dup]).build())
        problems = list(iter_header_problems(header))

        assert any("event id 316 is used by both" in p for p in problems)

    def test_signedness_and_size(self):
        bad = EventSpec(401, "bad_types", "test", [
            FieldSpec("unsigned int x", "x", 8, 4, signed=1),
            FieldSpec("u16 y", "y", 12, 4, signed=0),
        ], size=16)
        header = parse_header(TraceBuilder(events=[bad]).build())
        problems = list(iter_header_problems(header))

        assert any("'x'" in p and "unsigned but flagged signed" in p for p in problems)
        assert any("'y'" in p and "does not match type 'u16'" in p for p in problems)

    def test_check_header_reports_each_problem(self):
        header = parse_header(TraceBuilder(events=DEFAULT_EVENTS + [OVERLAPPING_EVENT], commit_size=4).build())
        out = io.StringIO()
        outcome = check_header(header, out)

        assert not outcome.ok
        assert outcome.value == len(outcome.errors) >= 2
        assert out.getvalue().splitlines() == outcome.errors


class TestMetadata:
    """Tests for header metadata extraction."""

    def test_header_metadata(self, header):
        meta, errors = header_metadata(header)

        assert errors == []
        assert meta["version"] == 6
        assert meta["endianness"] == "little"
        assert meta["long-size"] == 8
        assert meta["page-size"] == 4096
        assert meta["nr-cpus"] == 2
        assert meta["available-events"] == [
            "sched:sched_process_exec", "sched:sched_switch", "sched:sched_wakeup",
        ]
        assert meta["nr-kallsyms"] == 2
        assert meta["nr-printk-formats"] == 1
        assert meta["nr-cmdlines"] == 2
        assert meta["trace-clock"] == "local"
        assert meta["uname"].startswith("Linux testhost")
        assert meta["trace-cmd-version"] == "3.1.6"
        assert meta["trace-id"] == 0x1234ABCD

    def test_list_options(self):
        builder = TraceBuilder()
        builder.options += [
            (OptionId.CPUSTAT, b"CPU: 0\nentries: 5\n\0"),
            (OptionId.BUFFER, (0).to_bytes(8, "little") + b"instance1\0"),
            (OptionId.CPUCOUNT, (4).to_bytes(4, "little")),
        ]
        meta, errors = header_metadata(parse_header(builder.build()))

        assert errors == []
        assert meta["cpu-stats"] == ["CPU: 0\nentries: 5"]
        assert meta["buffers"] == ["instance1"]
        assert meta["cpu-count"] == 4

    def test_undecodable_option(self):
        builder = TraceBuilder()
        builder.options.append((OptionId.CPUCOUNT, b"\x01\x02"))
        header = parse_header(builder.build())

        out = io.StringIO()
        outcome = dump_header_metadata(header, out)

        assert not outcome.ok
        assert len(outcome.errors) == 1
        assert "cpucount" in outcome.errors[0]
        assert "cpu-count" not in json.loads(out.getvalue())

    def test_dump_is_sorted_json(self, header):
        out = io.StringIO()
        outcome = dump_header_metadata(header, out)
        text = out.getvalue()

        assert outcome.ok
        assert text.endswith("\n")
        assert json.loads(text) == outcome.value
        assert list(json.loads(text)) == sorted(outcome.value)
