"""Tests for utils/timezone.py - UTC-everywhere time handling."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import now_utc, today_utc, to_utc, hours_ago


class TestNowUtc:
    """Tests for now_utc()."""

    def test_returns_timezone_aware(self):
        """Result must have tzinfo set (not naive)."""
        result = now_utc()
        assert result.tzinfo is not None

    def test_is_utc(self):
        """Result timezone must be specifically UTC."""
        result = now_utc()
        assert result.tzinfo == timezone.utc

    def test_today_matches_now(self):
        """today_utc() is the date part of now_utc()."""
        assert today_utc() in {now_utc().date(), (now_utc() - timedelta(seconds=1)).date()}


class TestToUtc:
    """Tests for to_utc()."""

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        naive = datetime(2024, 1, 1, 12, 0, 0)
        with pytest.raises(ValueError, match="naive"):
            to_utc(naive)

    def test_converts_other_timezone(self):
        """Kuala Lumpur 14:00 becomes UTC 06:00."""
        local = datetime(2024, 1, 1, 14, 0, 0, tzinfo=ZoneInfo("Asia/Kuala_Lumpur"))
        result = to_utc(local)
        assert result.tzinfo == timezone.utc
        assert result.hour == 6


class TestHoursAgo:
    """Tests for hours_ago()."""

    def test_subtracts_hours_from_reference(self):
        """Cutoff is exactly N hours before the reference time."""
        reference = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert hours_ago(6, reference) == datetime(2024, 3, 1, 6, 0, 0, tzinfo=timezone.utc)

    def test_crosses_day_boundary(self):
        """24 hours back lands on the previous day."""
        reference = datetime(2024, 3, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert hours_ago(24, reference).day == 29

    def test_rejects_naive_reference(self):
        """Naive reference must raise ValueError."""
        with pytest.raises(ValueError, match="naive"):
            hours_ago(6, datetime(2024, 3, 1, 12, 0, 0))
