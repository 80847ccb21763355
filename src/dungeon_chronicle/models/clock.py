"""In-world calendar and clock.

The clock only moves when a rule or the narrator says so (rests, travel,
explicit time skips). It never follows wall-clock time.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from dungeon_chronicle.core.constants import DAYS_PER_MONTH, MONTHS_PER_YEAR


MONTH_NAMES = (
    "Hammer",
    "Alturiak",
    "Ches",
    "Tarsakh",
    "Mirtul",
    "Kythorn",
    "Flamerule",
    "Eleasis",
    "Eleint",
    "Marpenoth",
    "Uktar",
    "Nightal",
)

_MINUTES_PER_DAY = 24 * 60


class WorldClock(BaseModel):
    """In-world date and time.

    Months are always 30 days and years always 12 months.

    Attributes:
        year: Calendar year.
        month: Month of year, 1-12.
        day: Day of month, 1-30.
        hour: Hour of day, 0-23.
        minute: Minute of hour, 0-59.
    """

    model_config = ConfigDict(validate_assignment=True)

    year: int = Field(default=1492)
    month: int = Field(default=3, ge=1, le=MONTHS_PER_YEAR)
    day: int = Field(default=1, ge=1, le=DAYS_PER_MONTH)
    hour: int = Field(default=10, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)

    def advance(self, *, minutes: int = 0, hours: int = 0, days: int = 0) -> None:
        """Move the clock forward.

        Args:
            minutes: Minutes to add.
            hours: Hours to add.
            days: Days to add.

        Raises:
            ValueError: If the total is negative; the clock never runs backwards.
        """
        total = minutes + hours * 60 + days * _MINUTES_PER_DAY
        if total < 0:
            raise ValueError("The world clock cannot move backwards")

        minute_of_day = self.hour * 60 + self.minute + total
        extra_days, minute_of_day = divmod(minute_of_day, _MINUTES_PER_DAY)

        day_index = (self.day - 1) + extra_days
        extra_months, day_index = divmod(day_index, DAYS_PER_MONTH)

        month_index = (self.month - 1) + extra_months
        extra_years, month_index = divmod(month_index, MONTHS_PER_YEAR)

        self.year += extra_years
        self.month = month_index + 1
        self.day = day_index + 1
        self.hour = minute_of_day // 60
        self.minute = minute_of_day % 60

    def time_of_day(self) -> str:
        """Coarse period of the day, used in the narrator's state block."""
        if 5 <= self.hour < 12:
            return "morning"
        if 12 <= self.hour < 17:
            return "afternoon"
        if 17 <= self.hour < 21:
            return "evening"
        return "night"

    def label(self) -> str:
        """Human-readable timestamp, e.g. ``"1 Ches 1492, 10:00 (morning)"``."""
        month_name = MONTH_NAMES[self.month - 1]
        return (
            f"{self.day} {month_name} {self.year}, "
            f"{self.hour:02d}:{self.minute:02d} ({self.time_of_day()})"
        )


__all__ = ["WorldClock", "MONTH_NAMES"]
