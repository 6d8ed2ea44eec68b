from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from tms.core.clock import as_local


class DtrRecord(BaseModel):
    """One normalized attendance row, ready to be submitted for creation."""

    date: date
    time_in: datetime
    time_out: datetime | None = None
    hours_worked: float = Field(default=0.0, ge=0)
    accomplishment: str = ""


class DtrEntryCreate(BaseModel):
    date: date
    time_in: datetime
    time_out: datetime | None = None
    hours_worked: float = Field(default=0.0, ge=0)
    accomplishment: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def instant_to_local_date(cls, v):
        # ISO instants (e.g. local midnight sent as UTC) collapse to the local calendar date
        if isinstance(v, str) and "T" in v:
            return as_local(datetime.fromisoformat(v.replace("Z", "+00:00"))).date()
        if isinstance(v, datetime):
            return as_local(v).date()
        return v

    def to_record(self) -> DtrRecord:
        return DtrRecord(**self.model_dump())


class AdminDtrCreate(DtrEntryCreate):
    user_id: UUID | None = None


class TimeOutRequest(BaseModel):
    accomplishment: str | None = None


class AccomplishmentUpdate(BaseModel):
    accomplishment: str


class DtrEntryResponse(BaseModel):
    id: int
    user_id: UUID
    date: date
    time_in: datetime
    time_out: datetime | None
    hours_worked: float
    accomplishment: str


class ImportResultResponse(BaseModel):
    filename: str
    total: int
    accepted_count: int
    error_count: int
    errors: list[str]
    warnings: list[str] = []
    status: Literal["success", "partial", "failed"]
