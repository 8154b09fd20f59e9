"""
tracedump Test Configuration and Fixtures
==========================================
Shared fixtures: temporary directories and synthetic trace.dat files.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from tracebuilder import OVERLAPPING_EVENT, DEFAULT_EVENTS, TraceBuilder


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    path = Path(tempfile.mkdtemp(prefix="tracedump_test_"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


def populate(builder: TraceBuilder) -> TraceBuilder:
    """A small two-CPU scheduling trace."""
    builder.add_event(0, 1000, "sched_wakeup", common_pid=1234, comm="systemd", pid=1, prio=120, target_cpu=1)
    builder.add_event(1, 1500, "sched_switch", common_pid=0, prev_comm="swapper/1", prev_pid=0, prev_prio=120,
                      prev_state=0, next_comm="bash", next_pid=1234, next_prio=120)
    builder.add_event(0, 2000, "sched_process_exec", common_pid=1234, filename="/bin/ls", pid=1234,
                      old_pid=1234)
    builder.add_event(1, 2500, "sched_wakeup", common_pid=1, comm="bash", pid=1234, prio=100, target_cpu=0)
    builder.add_event(0, 3000, "sched_switch", common_pid=1234, prev_comm="ls", prev_pid=1234, prev_prio=120,
                      prev_state=1, next_comm="swapper/0", next_pid=0, next_prio=120)
    return builder


@pytest.fixture
def builder() -> TraceBuilder:
    return populate(TraceBuilder(nr_cpus=2))


@pytest.fixture
def trace_file(temp_dir, builder) -> Path:
    """Well-formed trace with five events on two CPUs."""
    return builder.write(temp_dir / "trace.dat")


@pytest.fixture
def empty_trace_file(temp_dir) -> Path:
    """Well-formed trace without any event."""
    return TraceBuilder(nr_cpus=2).write(temp_dir / "empty.dat")


@pytest.fixture
def corrupted_header_file(temp_dir) -> Path:
    """Trace whose header contradicts itself (commit size and field overlap)."""
    builder = populate(TraceBuilder(nr_cpus=2, events=DEFAULT_EVENTS + [OVERLAPPING_EVENT], commit_size=4))
    return builder.write(temp_dir / "corrupted.dat")


# =============================================================================
# Test Markers
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "integration: marks integration tests")
