import io
import logging
from datetime import date

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tms.core.middleware import require_role, require_supervisor
from tms.db.models import NapReport, User
from tms.db.session import get_db
from tms.schemas.nap_report import NapAggregate, NapReportCreate, NapReportResponse
from tms.services.fuzzy_matcher import find_matching_user
from tms.services.nap_totals import MONTH_CODES, calculate_totals, month_values

logger = logging.getLogger(__name__)

router = APIRouter()

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
_EXPORT_COLUMNS = ["Agent Name", "Agent Code", "Month", "CC", "SALE", "LAPSED"]


def _filtered(
    agent: str | None = None,
    agent_code: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
):
    stmt = select(NapReport)
    if agent:
        stmt = stmt.where(NapReport.agent_name.icontains(agent, autoescape=True))
    if agent_code:
        stmt = stmt.where(NapReport.agent_code == agent_code)
    # Reports whose period overlaps [date_from, date_to]
    if date_from:
        stmt = stmt.where(NapReport.report_end_date >= date_from)
    if date_to:
        stmt = stmt.where(NapReport.report_start_date <= date_to)
    return stmt


@router.post(
    "/",
    response_model=NapReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store an extracted NAP report",
)
async def create_report(
    body: NapReportCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> NapReportResponse:
    monthly = {
        month: month_values(data.model_dump()) if data else None
        for month, data in body.monthly.items()
    }
    totals = calculate_totals(monthly)
    user_id = await find_matching_user(body.agent_name, db)

    report = NapReport(
        agent_name=body.agent_name,
        agent_code=body.agent_code,
        user_id=user_id,
        report_start_date=body.report_start_date,
        report_end_date=body.report_end_date,
        monthly=monthly,
        total_cc=totals.total_cc,
        total_sale=totals.total_sale,
        total_lapsed=totals.total_lapsed,
        active_months=totals.active_months,
        source_filename=body.source_filename,
        parsed_by=body.parsed_by,
        confidence=body.confidence,
        created_by=current_user.id,
    )
    db.add(report)
    await db.commit()
    await db.refresh(report)

    logger.info(
        "NAP report stored: agent='%s', months=%s, linked_user=%s",
        report.agent_name, ",".join(report.active_months), user_id,
    )
    return NapReportResponse.model_validate(report)


@router.get("/", response_model=list[NapReportResponse], summary="List NAP reports")
async def list_reports(
    agent: str | None = Query(default=None, description="Agent name (partial, case-insensitive)"),
    agent_code: str | None = Query(default=None),
    date_from: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    date_to: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_supervisor),
) -> list[NapReportResponse]:
    stmt = _filtered(agent, agent_code, date_from, date_to).order_by(
        NapReport.created_at.desc(), NapReport.id.desc()
    )
    result = await db.execute(stmt)
    return [NapReportResponse.model_validate(r) for r in result.scalars().all()]


@router.get(
    "/aggregate",
    response_model=list[NapAggregate],
    summary="Totals per agent across all reports",
)
async def aggregate_reports(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_supervisor),
) -> list[NapAggregate]:
    reports = _filtered(date_from=date_from, date_to=date_to).subquery()
    stmt = (
        select(
            reports.c.agent_name,
            func.max(reports.c.agent_code),
            func.sum(reports.c.total_cc),
            func.sum(reports.c.total_sale),
            func.sum(reports.c.total_lapsed),
            func.count(reports.c.id),
            func.max(reports.c.updated_at),
        )
        .group_by(reports.c.agent_name)
    )
    result = await db.execute(stmt)

    rows = [
        NapAggregate(
            agent_name=name,
            agent_code=code,
            total_cc=int(cc or 0),
            total_sale=round(sale or 0, 2),
            total_lapsed=round(lapsed or 0, 2),
            report_count=count,
            last_updated=last_updated,
        )
        for name, code, cc, sale, lapsed, count, last_updated in result.all()
    ]
    return sorted(rows, key=lambda r: r.total_sale, reverse=True)


@router.get("/export", summary="Download NAP reports as an Excel workbook")
async def export_reports(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_supervisor),
) -> Response:
    stmt = _filtered(date_from=date_from, date_to=date_to).order_by(
        NapReport.agent_name, NapReport.report_start_date
    )
    reports = (await db.execute(stmt)).scalars().all()

    rows = []
    for report in reports:
        for month in MONTH_CODES:
            if month not in report.active_months:
                continue
            data = report.monthly.get(month) or {}
            rows.append(
                [
                    report.agent_name,
                    report.agent_code or "",
                    month,
                    data.get("cc", 0),
                    data.get("sale", 0),
                    data.get("lapsed", 0),
                ]
            )

    if not rows:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No NAP data for the specified period",
        )

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        pd.DataFrame(rows, columns=_EXPORT_COLUMNS).to_excel(
            writer, index=False, sheet_name="NAP Report"
        )

    logger.info("NAP export: %d reports, %d month rows", len(reports), len(rows))
    return Response(
        content=output.getvalue(),
        media_type=_XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=nap-report.xlsx"},
    )


@router.delete("/clear", summary="Delete every NAP report (admin only)")
async def clear_reports(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
) -> dict:
    result = await db.execute(delete(NapReport))
    await db.commit()
    logger.warning("All NAP reports cleared by %s (%d rows)", current_user.id, result.rowcount)
    return {"deleted": result.rowcount}
