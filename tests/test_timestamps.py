"""Tests for ralph/timestamps.py - Timestamp formatting functions.

This module tests:
- clock_timestamp format
- archive_timestamp format
- full_timestamp format
- jsonl_timestamp format
- format_duration output
"""

from datetime import datetime

import pytest

from ralph.timestamps import (
    archive_timestamp,
    clock_timestamp,
    format_duration,
    full_timestamp,
    jsonl_timestamp,
)

DT = datetime(2026, 1, 15, 14, 30, 5)


class TestClockTimestamp:
    """Tests for clock_timestamp - HH:MM:SS format."""

    def test_format(self) -> None:
        assert clock_timestamp(DT) == "14:30:05"

    def test_uses_now_if_none(self) -> None:
        result = clock_timestamp()
        assert len(result) == 8
        assert result[2] == ":"
        assert result[5] == ":"


class TestArchiveTimestamp:
    """Tests for archive_timestamp - YYYYmmdd_HHMMSS format."""

    def test_format(self) -> None:
        assert archive_timestamp(DT) == "20260115_143005"

    def test_uses_now_if_none(self) -> None:
        result = archive_timestamp()
        assert len(result) == 15
        assert result[8] == "_"


class TestFullTimestamp:
    """Tests for full_timestamp - YYYY-MM-DD HH:MM:SS format."""

    def test_format(self) -> None:
        assert full_timestamp(DT) == "2026-01-15 14:30:05"


class TestJsonlTimestamp:
    """Tests for jsonl_timestamp - MM-DD-HHMM format."""

    def test_format(self) -> None:
        assert jsonl_timestamp(DT) == "01-15-1430"


class TestFormatDuration:
    """Tests for format_duration - Xh Ym."""

    def test_minutes_only(self) -> None:
        assert format_duration(720) == "12m"

    def test_hours_and_minutes(self) -> None:
        assert format_duration(3900) == "1h 5m"

    def test_under_a_minute(self) -> None:
        assert format_duration(59.9) == "0m"

    def test_negative_raises(self) -> None:
        with pytest.raises(ValueError, match=">= 0"):
            format_duration(-1)
