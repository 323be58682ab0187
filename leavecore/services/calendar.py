# LeaveCore - Working Day Calendar

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, Optional


class WorkingCalendar:
    """
    Counts working days for leave requests.

    weekend_days uses date.weekday() numbering (Monday=0). Holidays are
    supplied by the caller; the engine does not own a holiday calendar.
    """

    def __init__(
        self,
        weekend_days: Iterable[int] = (5, 6),
        holidays: Optional[Iterable[date]] = None,
    ):
        self.weekend_days = frozenset(weekend_days)
        self.holidays = frozenset(holidays or ())

    def is_working_day(self, day: date) -> bool:
        return day.weekday() not in self.weekend_days and day not in self.holidays

    def working_days(self, start: date, end: date) -> Iterator[date]:
        day = start
        while day <= end:
            if self.is_working_day(day):
                yield day
            day += timedelta(days=1)

    def count_days(
        self,
        start: date,
        end: date,
        half_day_start: bool = False,
        half_day_end: bool = False,
    ) -> Decimal:
        """
        Working days in the inclusive range.

        A half day at either end only counts when that end is itself a
        working day; a single-day request with both flags is half a day.
        """
        days = Decimal(sum(1 for _ in self.working_days(start, end)))
        if days == 0:
            return days

        half = Decimal("0.5")
        if start == end:
            return half if (half_day_start or half_day_end) else days

        if half_day_start and self.is_working_day(start):
            days -= half
        if half_day_end and self.is_working_day(end):
            days -= half
        return days
