"""Tests for the in-world clock."""

from __future__ import annotations

import pytest

from dungeon_chronicle.models import WorldClock


class TestWorldClock:
    """Tests for WorldClock arithmetic and labels."""

    def test_defaults(self) -> None:
        """Test the default date."""
        clock = WorldClock()

        assert clock.label() == "1 Ches 1492, 10:00 (morning)"

    def test_minute_rollover(self) -> None:
        """Test minutes carry into hours."""
        clock = WorldClock(hour=10, minute=50)

        clock.advance(minutes=25)

        assert (clock.hour, clock.minute) == (11, 15)

    def test_day_rollover(self) -> None:
        """Test hours carry into the next day."""
        clock = WorldClock(day=5, hour=22)

        clock.advance(hours=3)

        assert (clock.day, clock.hour) == (6, 1)

    def test_month_and_year_rollover(self) -> None:
        """Test the last day of the year rolls into the next year."""
        clock = WorldClock(year=1492, month=12, day=30, hour=23, minute=59)

        clock.advance(minutes=1)

        assert (clock.year, clock.month, clock.day, clock.hour, clock.minute) == (1493, 1, 1, 0, 0)

    def test_multi_day_advance(self) -> None:
        """Test advancing by whole days crosses month boundaries."""
        clock = WorldClock(month=3, day=25)

        clock.advance(days=10)

        assert (clock.month, clock.day) == (4, 5)

    def test_cannot_run_backwards(self) -> None:
        """Test negative advances are refused."""
        clock = WorldClock()

        with pytest.raises(ValueError):
            clock.advance(minutes=-5)

        assert clock.hour == 10

    @pytest.mark.parametrize(
        ("hour", "period"),
        [(6, "morning"), (13, "afternoon"), (19, "evening"), (23, "night"), (2, "night")],
    )
    def test_time_of_day(self, hour: int, period: str) -> None:
        """Test coarse periods of the day."""
        assert WorldClock(hour=hour).time_of_day() == period
