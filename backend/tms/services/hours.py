"""
Hour totals and productivity figures derived from DTR entries.

Functions here take any objects exposing ``work_date``, ``time_in``,
``time_out`` and ``hours_worked`` (ORM ``DtrEntry`` rows in the API) and do
no I/O.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Literal, Protocol

from tms.core.clock import as_utc

Period = Literal["week", "month", "quarter", "year"]

# Rough working-day estimates per reporting period
EXPECTED_DAYS: dict[str, int] = {"week": 5, "month": 22, "quarter": 66, "year": 264}
HOURS_PER_DAY = 8


class EntryLike(Protocol):
    work_date: date
    time_in: datetime
    time_out: datetime | None
    hours_worked: float


def period_start(period: Period, today: date) -> date:
    """First local day of the week (Monday), month, quarter or year holding ``today``."""
    if period == "month":
        return today.replace(day=1)
    if period == "quarter":
        first_month = 3 * ((today.month - 1) // 3) + 1
        return date(today.year, first_month, 1)
    if period == "year":
        return date(today.year, 1, 1)
    return today - timedelta(days=today.weekday())


def period_end(period: Period, today: date) -> date:
    start = period_start(period, today)
    if period == "week":
        return start + timedelta(days=6)
    months = {"month": 1, "quarter": 3, "year": 12}[period]
    month = start.month + months
    year = start.year + (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, 1) - timedelta(days=1)


def completed(entries: Iterable[EntryLike]) -> list[EntryLike]:
    return [e for e in entries if e.time_out is not None]


def total_completed_hours(entries: Iterable[EntryLike]) -> float:
    return round(sum(e.hours_worked or 0.0 for e in completed(entries)), 2)


def hours_progress(total: float, required: float | None) -> tuple[float | None, float]:
    """Return (remaining_hours, progress_pct); progress is capped at 100."""
    if not required:
        return None, 0.0
    remaining = round(max(0.0, required - total), 2)
    return remaining, round(min(100.0, total / required * 100), 1)


@dataclass
class MemberPeriodStats:
    total_hours: float
    avg_hours_per_day: float
    attendance: int
    productivity: int
    last_activity: date | None


def member_period_stats(entries: Sequence[EntryLike], period: Period) -> MemberPeriodStats:
    done = completed(entries)
    total = sum(e.hours_worked or 0.0 for e in done)
    working_days = len(done)
    expected_days = EXPECTED_DAYS.get(period, EXPECTED_DAYS["week"])
    expected_hours = expected_days * HOURS_PER_DAY

    attendance = min(100.0, working_days / expected_days * 100)
    productivity = min(100.0, total / expected_hours * 100)
    last_activity = max((e.work_date for e in entries), default=None)

    return MemberPeriodStats(
        total_hours=round(total, 2),
        avg_hours_per_day=round(total / working_days, 2) if working_days else 0.0,
        attendance=round(attendance),
        productivity=round(productivity),
        last_activity=last_activity,
    )


def daily_productivity(
    entries: Iterable[EntryLike], member_count: int, start: date, end: date
) -> list[tuple[date, int]]:
    """Team hours per day from ``start`` to ``end`` as a percentage of
    ``member_count`` full working days, capped at 100."""
    hours_by_day: dict[date, float] = defaultdict(float)
    for e in completed(entries):
        hours_by_day[e.work_date] += e.hours_worked or 0.0

    expected = member_count * HOURS_PER_DAY
    days: list[tuple[date, int]] = []
    day = start
    while day <= end:
        pct = min(100.0, hours_by_day[day] / expected * 100) if expected else 0.0
        days.append((day, round(pct)))
        day += timedelta(days=1)
    return days


def trailing_weeks_start(today: date, weeks: int = 4) -> date:
    """Monday of the oldest of the ``weeks`` weeks ending with the current one."""
    return period_start("week", today) - timedelta(weeks=weeks - 1)


def weekly_hours(entries: Iterable[EntryLike], today: date, weeks: int = 4) -> list[tuple[str, int]]:
    done = completed(entries)
    first = trailing_weeks_start(today, weeks)
    totals: list[tuple[str, int]] = []
    for i in range(weeks):
        start = first + timedelta(weeks=i)
        end = start + timedelta(days=6)
        hours = sum(e.hours_worked or 0.0 for e in done if start <= e.work_date <= end)
        totals.append((f"Week {i + 1}", round(hours)))
    return totals


@dataclass
class DayStatus:
    current_status: Literal["never_clocked", "clocked_in", "clocked_out"]
    last_clock_in: datetime | None
    last_clock_out: datetime | None
    today_hours: float


def day_status(entries: Sequence[EntryLike]) -> DayStatus:
    """Clock state for one user from that user's entries of a single day."""
    if not entries:
        return DayStatus("never_clocked", None, None, 0.0)

    latest = max(entries, key=lambda e: as_utc(e.time_in))
    clock_ins = [as_utc(e.time_in) for e in entries]
    clock_outs = [as_utc(e.time_out) for e in entries if e.time_out is not None]

    return DayStatus(
        current_status="clocked_out" if latest.time_out is not None else "clocked_in",
        last_clock_in=max(clock_ins),
        last_clock_out=max(clock_outs) if clock_outs else None,
        today_hours=round(sum(e.hours_worked or 0.0 for e in entries), 2),
    )
