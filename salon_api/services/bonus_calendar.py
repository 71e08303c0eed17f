# salon_api/services/bonus_calendar.py
"""
Bonus weeks are month-relative, not ISO weeks:

    week 1 = days 1-7, week 2 = 8-14, week 3 = 15-21, week 4 = 22-28,
    week 5 = day 29 to the end of the month (1-3 days, absent in a 28-day February).

Nothing here reads the clock; callers pass the day/date they care about.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Tuple

from salon_api.common.errors import ValidationError

WEEK_STARTS = {1: 1, 2: 8, 3: 15, 4: 22, 5: 29}
MIN_YEAR, MAX_YEAR = 2020, 2100


@dataclass
class WeekInfo:
    year: int
    month: int
    week_number: int
    week_start: date
    week_end: date
    days_count: int

    def as_dict(self):
        return {
            "year": self.year,
            "month": self.month,
            "week_number": self.week_number,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "days_count": self.days_count,
        }


@dataclass
class WeekValidation:
    is_valid: bool
    expected_days: int
    actual_days: int
    missing_dates: List[date] = field(default_factory=list)
    message: str = ""

    def as_dict(self):
        return {
            "is_valid": self.is_valid,
            "expected_days": self.expected_days,
            "actual_days": self.actual_days,
            "missing_dates": [d.isoformat() for d in self.missing_dates],
            "message": self.message,
        }


def _check_period(year, month, week_number=None):
    if not isinstance(year, int) or not (MIN_YEAR <= year <= MAX_YEAR):
        raise ValidationError(f"year must be between {MIN_YEAR} and {MAX_YEAR}", payload={"year": year})
    if not isinstance(month, int) or not (1 <= month <= 12):
        raise ValidationError("month must be between 1 and 12", payload={"month": month})
    if week_number is not None and (not isinstance(week_number, int) or week_number not in WEEK_STARTS):
        raise ValidationError("week_number must be between 1 and 5", payload={"week_number": week_number})


def week_number_for_day(day: int) -> int:
    if not isinstance(day, int) or not (1 <= day <= 31):
        raise ValidationError("day must be between 1 and 31", payload={"day": day})
    if day <= 7:
        return 1
    if day <= 14:
        return 2
    if day <= 21:
        return 3
    if day <= 28:
        return 4
    return 5


def week_date_range(year: int, month: int, week_number: int) -> Tuple[date, date]:
    """Inclusive (start, end) dates of a bonus week."""
    _check_period(year, month, week_number)
    last_day = calendar.monthrange(year, month)[1]
    start_day = WEEK_STARTS[week_number]
    if start_day > last_day:
        raise ValidationError(
            f"{calendar.month_name[month]} {year} has no week {week_number}",
            payload={"year": year, "month": month, "week_number": week_number},
        )
    end_day = last_day if week_number == 5 else start_day + 6
    return date(year, month, start_day), date(year, month, end_day)


def expected_days_count(year: int, month: int, week_number: int) -> int:
    _check_period(year, month, week_number)
    if week_number <= 4:
        return 7
    return max(0, calendar.monthrange(year, month)[1] - 28)


def week_dates(year: int, month: int, week_number: int) -> List[date]:
    start, end = week_date_range(year, month, week_number)
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def week_info(on_date: date) -> WeekInfo:
    """Bonus week that contains `on_date`."""
    wn = week_number_for_day(on_date.day)
    start, end = week_date_range(on_date.year, on_date.month, wn)
    return WeekInfo(
        year=on_date.year,
        month=on_date.month,
        week_number=wn,
        week_start=start,
        week_end=end,
        days_count=(end - start).days + 1,
    )


def validate_week_data(year: int, month: int, week_number: int, entered_dates: Iterable[date]) -> WeekValidation:
    """Check that a revenue sheet was entered for every day of the week."""
    expected = week_dates(year, month, week_number)
    entered = set(entered_dates)
    missing = [d for d in expected if d not in entered]

    if not missing:
        msg = f"Week {week_number} complete ({len(expected)} days)"
    else:
        days = ", ".join(str(d.day) for d in missing)
        msg = f"Week {week_number} incomplete - {len(missing)} day(s) missing ({days})"

    return WeekValidation(
        is_valid=not missing,
        expected_days=len(expected),
        actual_days=len(expected) - len(missing),
        missing_dates=missing,
        message=msg,
    )
