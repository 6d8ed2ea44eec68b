from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from tms.services.nap_totals import has_activity, normalize_month


class MonthData(BaseModel):
    cc: float = Field(default=0, ge=0)
    sale: float = Field(default=0, ge=0)
    lapsed: float = Field(default=0, ge=0)


class NapReportCreate(BaseModel):
    """A report as produced by the PDF extraction step."""

    agent_name: str = Field(..., min_length=1, max_length=255)
    agent_code: str | None = None
    report_start_date: date
    report_end_date: date
    monthly: dict[str, MonthData | None]
    source_filename: str | None = None
    parsed_by: Literal["gemini", "regex", "manual"] = "manual"
    confidence: float = Field(default=1.0, ge=0, le=1)

    @field_validator("agent_name")
    @classmethod
    def strip_agent_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("monthly", mode="before")
    @classmethod
    def normalize_month_keys(cls, v):
        if not isinstance(v, dict):
            return v
        return {normalize_month(str(k)): data for k, data in v.items()}

    @model_validator(mode="after")
    def check_period_and_activity(self) -> "NapReportCreate":
        if self.report_start_date >= self.report_end_date:
            raise ValueError("Report start date must be before end date")
        monthly = {k: m.model_dump() if m else None for k, m in self.monthly.items()}
        if not has_activity(monthly):
            raise ValueError("At least one month must have CC or LAPSED activity")
        return self


class NapReportResponse(BaseModel):
    id: int
    agent_name: str
    agent_code: str | None
    user_id: UUID | None
    report_start_date: date
    report_end_date: date
    monthly: dict[str, dict | None]
    total_cc: int
    total_sale: float
    total_lapsed: float
    active_months: list[str]
    source_filename: str | None
    parsed_by: str
    confidence: float
    created_at: datetime

    model_config = {"from_attributes": True}


class NapAggregate(BaseModel):
    agent_name: str
    agent_code: str | None
    total_cc: int
    total_sale: float
    total_lapsed: float
    report_count: int
    last_updated: datetime | None
