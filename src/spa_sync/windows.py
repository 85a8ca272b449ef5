"""Date windowing for source fetches."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator

from spa_sync.errors import InvalidRangeError

MAX_WINDOW_DAYS = 7


@dataclass(frozen=True)
class DateWindow:
    """Inclusive range of whole days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise InvalidRangeError(
                f"Window end {self.end.isoformat()} is before start {self.start.isoformat()}"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end


class DateWindows:
    """Restartable sequence of contiguous windows covering [start, end].

    Every window spans at most ``max_days`` days and the last one ends
    exactly on ``end``.
    """

    def __init__(self, start: date, end: date, max_days: int = MAX_WINDOW_DAYS):
        if end < start:
            raise InvalidRangeError(
                f"End date {end.isoformat()} is before start date {start.isoformat()}"
            )
        if max_days < 1:
            raise InvalidRangeError(f"Window width must be at least one day, got {max_days}")
        self.start = start
        self.end = end
        self.max_days = max_days

    def __iter__(self) -> Iterator[DateWindow]:
        current = self.start
        while current <= self.end:
            window_end = min(current + timedelta(days=self.max_days - 1), self.end)
            yield DateWindow(current, window_end)
            current = window_end + timedelta(days=1)

    def __len__(self) -> int:
        total_days = (self.end - self.start).days + 1
        return -(-total_days // self.max_days)
