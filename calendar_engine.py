"""
Date arithmetic for the 13-month calendar.

Every month has 28 days split into four 7-day weeks, so the year is 52 weeks
(364 days). Nothing here touches the database; the API layer persists what
these functions derive.
"""
from datetime import date, timedelta
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from schemas import Month, WeeklyTask

DAYS_PER_MONTH = 28
DAYS_PER_WEEK = 7
WEEKS_PER_MONTH = 4
MONTHS_PER_YEAR = 13
WEEKS_PER_YEAR = MONTHS_PER_YEAR * WEEKS_PER_MONTH

REFERENCE_YEAR = 2025

# Weekday (0=Sunday) of the 1st of each Gregorian month in REFERENCE_YEAR
START_WEEKDAYS = {
    1: 3, 2: 6, 3: 6, 4: 2, 5: 4, 6: 0,
    7: 2, 8: 5, 9: 1, 10: 3, 11: 6, 12: 1,
}
# The 13th month has no Gregorian counterpart
INTERCALARY_START_WEEKDAY = 3

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December", "Yes",
)

TASK_COLORS = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4",
    "#FFEEAD", "#D4A5A5", "#9B59B6", "#3498DB",
)


class CalendarRangeError(ValueError):
    """An ordinal or index fell outside the calendar's fixed ranges."""


class DayRange(NamedTuple):
    first: int
    last: int


class GlobalWeek(NamedTuple):
    month_order: int
    week_in_month: int


def _check(name: str, value: int, low: int, high: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
        raise CalendarRangeError(f"{name} must be in {low}..{high}, got {value!r}")


def start_weekday(order: int) -> int:
    _check("month order", order, 1, MONTHS_PER_YEAR)
    return START_WEEKDAYS.get(order, INTERCALARY_START_WEEKDAY)


def week_day_range(week: int) -> DayRange:
    _check("week", week, 1, WEEKS_PER_MONTH)
    return DayRange((week - 1) * DAYS_PER_WEEK + 1, week * DAYS_PER_WEEK)


def week_days(week: int) -> List[int]:
    first, last = week_day_range(week)
    return list(range(first, last + 1))


def week_for_day(day: int) -> int:
    _check("day", day, 1, DAYS_PER_MONTH)
    return (day - 1) // DAYS_PER_WEEK + 1


def resolve_global_week(week: int) -> GlobalWeek:
    """Map a 1..52 week of the year to its month and week-in-month."""
    _check("global week", week, 1, WEEKS_PER_YEAR)
    return GlobalWeek((week - 1) // WEEKS_PER_MONTH + 1, (week - 1) % WEEKS_PER_MONTH + 1)


def global_week(month_order: int, week_in_month: int) -> int:
    _check("month order", month_order, 1, MONTHS_PER_YEAR)
    _check("week", week_in_month, 1, WEEKS_PER_MONTH)
    return (month_order - 1) * WEEKS_PER_MONTH + week_in_month


def week_code(week: int, year: int = REFERENCE_YEAR) -> str:
    """Short label such as ``25-01`` for the first week of 2025."""
    _check("global week", week, 1, WEEKS_PER_YEAR)
    return f"{year % 100:02d}-{week:02d}"


def day_date(month_order: int, day: int, anchor: date) -> date:
    _check("month order", month_order, 1, MONTHS_PER_YEAR)
    _check("day", day, 1, DAYS_PER_MONTH)
    return anchor + timedelta(days=(month_order - 1) * DAYS_PER_MONTH + day - 1)


def week_dates(month_order: int, week: int, anchor: date) -> Tuple[date, date]:
    first, last = week_day_range(week)
    return day_date(month_order, first, anchor), day_date(month_order, last, anchor)


def render_grid(start_day: int, day_count: int = DAYS_PER_MONTH) -> List[Optional[int]]:
    """
    Cells of a 7-column month view: ``start_day`` blanks (None), then the days
    in order, then trailing blanks up to a full row.
    """
    _check("start day", start_day, 0, DAYS_PER_WEEK - 1)
    if day_count < 1:
        raise CalendarRangeError(f"day count must be positive, got {day_count!r}")
    cells: List[Optional[int]] = [None] * start_day
    cells.extend(range(1, day_count + 1))
    cells.extend([None] * (-len(cells) % DAYS_PER_WEEK))
    return cells


def grid_rows(cells: Sequence[Optional[int]]) -> List[List[Optional[int]]]:
    return [list(cells[i:i + DAYS_PER_WEEK]) for i in range(0, len(cells), DAYS_PER_WEEK)]


def default_months(user_id: str, names: Sequence[str] = MONTH_NAMES) -> List[Month]:
    if len(names) != MONTHS_PER_YEAR:
        raise CalendarRangeError(f"expected {MONTHS_PER_YEAR} month names, got {len(names)}")
    return [
        Month(user_id=user_id, name=name, order=order, start_day=start_weekday(order))
        for order, name in enumerate(names, start=1)
    ]


def default_tasks(user_id: str, months: Iterable[Tuple[str, int]], anchor: date) -> List[WeeklyTask]:
    """
    Four empty tasks per ``(month_id, order)`` pair, one per week, whose day
    sets partition 1..28.
    """
    tasks = []
    for month_id, order in months:
        for week in range(1, WEEKS_PER_MONTH + 1):
            start, end = week_dates(order, week, anchor)
            tasks.append(WeeklyTask(
                user_id=user_id,
                month_id=month_id,
                week_number=week,
                start_date=start.isoformat(),
                end_date=end.isoformat(),
                days=week_days(week),
                color=TASK_COLORS[(week - 1) % len(TASK_COLORS)],
            ))
    return tasks
