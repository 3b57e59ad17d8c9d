"""Tests for hostmon data models."""

from datetime import datetime

import pytest

from hostmon.models import LogRecord, ProcessRecord, Sample, clamp_percent


def make_sample(**overrides) -> Sample:
    values = dict(
        timestamp=datetime(2026, 10, 18, 12, 30, 5),
        cpu_percent=12.34,
        memory_percent=45.6,
        load_average="0.52, 0.58, 0.59",
        disk_percent=40,
    )
    values.update(overrides)
    return Sample(**values)


def test_sample_summary():
    """Test Sample renders the normal-log summary line."""
    assert make_sample().summary() == (
        "CPU: 12.3%, Memory: 45.6%, Load: 0.52, 0.58, 0.59, Disk: 40%"
    )


def test_sample_is_frozen():
    """Test that Sample is immutable (frozen)."""
    sample = make_sample()
    with pytest.raises(AttributeError):
        sample.cpu_percent = 99.0


def test_process_record_uses_slots():
    """Test that ProcessRecord uses __slots__ for memory efficiency."""
    record = ProcessRecord(
        user="root", pid=1, cpu_percent=0.1, memory_percent=0.5, command="/sbin/init"
    )

    # Slots-based dataclasses don't have __dict__
    assert not hasattr(record, "__dict__")


@pytest.mark.parametrize(
    "raw, expected",
    [(-5.0, 0.0), (0.0, 0.0), (55.5, 55.5), (100.0, 100.0), (250.0, 100.0)],
)
def test_clamp_percent(raw, expected):
    """Test percentages are clamped into [0, 100]."""
    assert clamp_percent(raw) == expected


class TestLogRecord:
    """Tests for LogRecord serialization."""

    def test_format(self):
        record = LogRecord(datetime(2026, 1, 2, 3, 4, 5), "Monitoring stopped")
        assert record.format() == "[2026-01-02 03:04:05] Monitoring stopped"

    def test_parse_formatted_line(self):
        line = "[2026-01-02 03:04:05] CPU: 1.0%, Memory: 2.0%\n"
        record = LogRecord.parse(line)

        assert record == LogRecord(datetime(2026, 1, 2, 3, 4, 5), "CPU: 1.0%, Memory: 2.0%")

    def test_parse_message_containing_brackets(self):
        record = LogRecord.parse("[2026-01-02 03:04:05] list [a] ok")
        assert record is not None
        assert record.message == "list [a] ok"

    @pytest.mark.parametrize(
        "line",
        [
            "USER       PID    CPU%   MEM%   COMMAND",
            "root            1    0.0%    0.1% /sbin/init",
            "[not a date] hello",
            "",
        ],
    )
    def test_parse_rejects_untimestamped_lines(self, line):
        assert LogRecord.parse(line) is None
