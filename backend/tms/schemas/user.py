from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

Role = Literal["intern", "staff", "unit_manager", "admin"]


class UserCreate(BaseModel):
    name: str
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6)
    role: Role = "intern"
    required_hours: float | None = Field(default=None, ge=0)


class UserUpdate(BaseModel):
    role: Role | None = None
    is_active: bool | None = None
    name: str | None = None
    required_hours: float | None = Field(default=None, ge=0)


class RequiredHoursUpdate(BaseModel):
    required_hours: float = Field(..., ge=0)


class UserResponse(BaseModel):
    id: UUID
    name: str
    email: str
    role: str
    supervisor_id: UUID | None
    required_hours: float | None
    is_active: bool
    zoom_connected: bool

    model_config = {"from_attributes": True}


class TotalHoursResponse(BaseModel):
    user_id: UUID
    name: str
    role: str
    total_hours_worked: float
    required_hours: float | None
    remaining_hours: float | None
    progress_pct: float
    completed_entries: int


class TeamHoursSummary(BaseModel):
    total_members: int
    total_hours_worked: float
    members: list[TotalHoursResponse]


class TeamMemberStatus(BaseModel):
    id: UUID
    name: str
    email: str
    role: str
    current_status: Literal["never_clocked", "clocked_in", "clocked_out"]
    last_clock_in: datetime | None
    last_clock_out: datetime | None
    today_hours: float
    is_first_time_today: bool
