from datetime import date
from typing import Literal
from uuid import UUID

from pydantic import BaseModel


class SupervisionStats(BaseModel):
    total_supervised: int
    active_today: int
    total_hours_this_week: float
    avg_hours_worked: float


class MemberReport(BaseModel):
    id: UUID
    name: str
    email: str
    role: str
    total_hours: float
    avg_hours_per_day: float
    attendance: int
    productivity: int
    last_activity: date | None


class TeamReport(BaseModel):
    period: Literal["week", "month", "quarter"]
    total_members: int
    total_hours: float
    avg_productivity: float
    top_performer: str
    members: list[MemberReport]


class DailyProductivity(BaseModel):
    date: date
    productivity: int


class WeeklyHours(BaseModel):
    week: str
    hours: int


class MemberHours(BaseModel):
    member: str
    hours: int


class TeamAnalytics(BaseModel):
    team_productivity: list[DailyProductivity]
    weekly_hours: list[WeeklyHours]
    monthly_posts: list[dict] = []
    recruitment_status: list[dict] = []
    member_performance: list[MemberHours]
