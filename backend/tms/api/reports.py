"""
Supervision reports.

Figures are computed in Python from the supervised users' DTR entries;
periods are local calendar ranges (see ``tms.services.hours``).
"""

from collections import defaultdict
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tms.core.clock import as_local, local_today
from tms.core.middleware import require_supervisor
from tms.db.models import DtrEntry, User
from tms.db.session import get_db
from tms.schemas.report import (
    DailyProductivity,
    MemberHours,
    MemberReport,
    SupervisionStats,
    TeamAnalytics,
    TeamReport,
    WeeklyHours,
)
from tms.services.hours import (
    completed,
    daily_productivity,
    member_period_stats,
    period_end,
    period_start,
    total_completed_hours,
    trailing_weeks_start,
    weekly_hours,
)

router = APIRouter()


async def _supervised(db: AsyncSession, supervisor: User) -> list[User]:
    result = await db.execute(
        select(User).where(User.supervisor_id == supervisor.id).order_by(User.name)
    )
    return list(result.scalars().all())


@router.get(
    "/supervision/stats",
    response_model=SupervisionStats,
    summary="Headline numbers for the current supervisor's team",
)
async def get_supervision_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> SupervisionStats:
    members = await _supervised(db, current_user)
    member_ids = [m.id for m in members]
    today = local_today()

    active_today = 0
    week_total = 0.0
    if member_ids:
        active_today = (
            await db.execute(
                select(func.count(DtrEntry.id)).where(
                    DtrEntry.user_id.in_(member_ids),
                    DtrEntry.work_date == today,
                )
            )
        ).scalar_one()

        week = await db.execute(
            select(DtrEntry).where(
                DtrEntry.user_id.in_(member_ids),
                DtrEntry.work_date >= period_start("week", today),
                DtrEntry.work_date <= period_end("week", today),
            )
        )
        week_total = total_completed_hours(week.scalars().all())

    return SupervisionStats(
        total_supervised=len(members),
        active_today=active_today,
        total_hours_this_week=week_total,
        avg_hours_worked=round(week_total / len(members), 2) if members else 0.0,
    )


@router.get(
    "/team",
    response_model=TeamReport,
    summary="Per-member hours, attendance and productivity for a period",
)
async def get_team_report(
    period: Literal["week", "month", "quarter"] = Query(default="week"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> TeamReport:
    members = await _supervised(db, current_user)
    if not members:
        return TeamReport(
            period=period,
            total_members=0,
            total_hours=0.0,
            avg_productivity=0.0,
            top_performer="No team members",
            members=[],
        )

    today = local_today()
    result = await db.execute(
        select(DtrEntry).where(
            DtrEntry.user_id.in_([m.id for m in members]),
            DtrEntry.work_date >= period_start(period, today),
            DtrEntry.work_date <= period_end(period, today),
        )
    )
    by_user: dict = defaultdict(list)
    for entry in result.scalars().all():
        by_user[entry.user_id].append(entry)

    reports: list[MemberReport] = []
    for member in members:
        stats = member_period_stats(by_user.get(member.id, []), period)
        reports.append(
            MemberReport(
                id=member.id,
                name=member.name,
                email=member.email,
                role=member.role,
                total_hours=stats.total_hours,
                avg_hours_per_day=stats.avg_hours_per_day,
                attendance=stats.attendance,
                productivity=stats.productivity,
                last_activity=stats.last_activity or as_local(member.created_at).date(),
            )
        )

    # An all-zero team has no top performer
    top_name, top_score = "No data", 0
    for report in reports:
        if report.productivity > top_score:
            top_name, top_score = report.name, report.productivity

    return TeamReport(
        period=period,
        total_members=len(members),
        total_hours=round(sum(r.total_hours for r in reports), 2),
        avg_productivity=round(sum(r.productivity for r in reports) / len(reports), 2),
        top_performer=top_name,
        members=reports,
    )


@router.get(
    "/analytics",
    response_model=TeamAnalytics,
    summary="Chart series for the current supervisor's team",
)
async def get_analytics(
    period: Literal["week", "month", "quarter", "year"] = Query(default="week"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> TeamAnalytics:
    members = await _supervised(db, current_user)
    if not members:
        return TeamAnalytics(team_productivity=[], weekly_hours=[], member_performance=[])

    today = local_today()
    start, end = period_start(period, today), period_end(period, today)
    result = await db.execute(
        select(DtrEntry).where(
            DtrEntry.user_id.in_([m.id for m in members]),
            DtrEntry.work_date >= min(start, trailing_weeks_start(today)),
            DtrEntry.work_date <= end,
            DtrEntry.time_out.is_not(None),
        )
    )
    entries = result.scalars().all()
    in_period = [e for e in entries if start <= e.work_date <= end]

    hours_by_user: dict = defaultdict(float)
    for entry in completed(in_period):
        hours_by_user[entry.user_id] += entry.hours_worked or 0.0

    return TeamAnalytics(
        team_productivity=[
            DailyProductivity(date=day, productivity=pct)
            for day, pct in daily_productivity(in_period, len(members), start, end)
        ],
        weekly_hours=[
            WeeklyHours(week=label, hours=hours) for label, hours in weekly_hours(entries, today)
        ],
        member_performance=[
            MemberHours(member=m.name, hours=round(hours_by_user[m.id])) for m in members
        ],
    )
