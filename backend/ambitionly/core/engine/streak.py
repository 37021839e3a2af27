"""
Streak Tracker - consecutive calendar days with at least one completion.

Dates are device-local calendar dates. The stored record is only updated on
a real completion; a lapsed streak reads as 0 without being rewritten.
"""

from datetime import date, datetime, timedelta
from typing import Callable

from ambitionly.core.schemas import StreakRecord


def advance_streak(record: StreakRecord, today: date) -> StreakRecord:
    """Apply one completion made on ``today``."""
    yesterday = today - timedelta(days=1)
    if record.last_completion_date == yesterday:
        streak = record.streak + 1
    elif record.last_completion_date == today:
        streak = record.streak
    else:
        streak = 1
    return StreakRecord(last_completion_date=today, streak=streak)


def visible_streak(record: StreakRecord, today: date) -> int:
    """Current streak as shown to the user; 0 once a full day was skipped."""
    yesterday = today - timedelta(days=1)
    if record.last_completion_date in (today, yesterday):
        return record.streak
    return 0


def local_date(epoch_ms: float) -> date:
    return datetime.fromtimestamp(epoch_ms / 1000).date()


class StreakTracker:
    """Holds the streak record and reads "today" from the engine clock."""

    def __init__(self, clock: Callable[[], float], record: StreakRecord | None = None):
        self._clock = clock
        self.record = record or StreakRecord()

    def today(self) -> date:
        return local_date(self._clock())

    def record_completion_today(self) -> StreakRecord:
        self.record = advance_streak(self.record, self.today())
        return self.record

    def current_streak(self) -> int:
        return visible_streak(self.record, self.today())

    def reset(self) -> None:
        self.record = StreakRecord()
