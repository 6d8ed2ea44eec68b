import logging
import math
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tms.core.clock import as_utc, local_today, now_utc
from tms.core.config import settings
from tms.core.middleware import can_view_user, get_current_user, require_role, require_supervisor
from tms.db.models import DtrEntry, ImportHistory, User
from tms.db.session import get_db
from tms.schemas.dtr import (
    AccomplishmentUpdate,
    AdminDtrCreate,
    DtrEntryCreate,
    DtrEntryResponse,
    DtrRecord,
    ImportResultResponse,
    TimeOutRequest,
)
from tms.services.dtr_entries import (
    DtrEntryRejected,
    create_dtr_entry,
    submit_records,
    to_response,
)
from tms.services.dtr_normalizer import (
    ImportStructureError,
    detect_format,
    hours_between,
    normalize_payload,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_DEFAULT_ACCOMPLISHMENT = "No notes provided"


@router.post(
    "/import",
    response_model=ImportResultResponse,
    summary="Import DTR entries from a CSV, JSON or Excel file",
)
async def import_file(
    file: UploadFile,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ImportResultResponse:
    filename = file.filename or "unknown"
    fmt = detect_format(file.filename)
    logger.info("DTR import: '%s' (format: %s, user: %s)", filename, fmt, current_user.id)

    if fmt is None:
        logger.warning("Rejected file '%s': unsupported extension", filename)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported file type. Allowed: .csv, .json, .xlsx",
        )

    content = await file.read()
    try:
        batch = normalize_payload(content, fmt)
    except ImportStructureError as exc:
        logger.warning("Rejected file '%s': %s", filename, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    submission = await submit_records(db, current_user.id, batch.records)
    errors = batch.errors + submission.errors
    total = batch.total

    if submission.accepted == 0 and total > 0:
        import_status = "failed"
    elif errors:
        import_status = "partial"
    else:
        import_status = "success"

    logger.info(
        "Import finished [%s]: status=%s, total=%d, accepted=%d, errors=%d",
        filename, import_status, total, submission.accepted, len(errors),
    )

    limit = settings.IMPORT_MAX_ERRORS_LOGGED
    history = ImportHistory(
        filename=filename,
        uploaded_by=current_user.id,
        uploaded_at=now_utc(),
        status=import_status,
        logs={
            "total": total,
            "accepted": submission.accepted,
            "errors": errors[:limit],
            "warnings": batch.warnings[:limit],
        },
    )
    db.add(history)
    await db.commit()

    return ImportResultResponse(
        filename=filename,
        total=total,
        accepted_count=submission.accepted,
        error_count=len(errors),
        errors=errors,
        warnings=batch.warnings,
        status=import_status,
    )


@router.get("/imports", summary="List import history (paginated)")
async def list_imports(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    count_stmt = select(func.count(ImportHistory.id))
    stmt = (
        select(ImportHistory)
        .options(selectinload(ImportHistory.uploader))
        .order_by(ImportHistory.uploaded_at.desc(), ImportHistory.id.desc())
    )
    if current_user.role != "admin":
        count_stmt = count_stmt.where(ImportHistory.uploaded_by == current_user.id)
        stmt = stmt.where(ImportHistory.uploaded_by == current_user.id)

    total = (await db.execute(count_stmt)).scalar_one()
    result = await db.execute(stmt.offset((page - 1) * per_page).limit(per_page))

    items = [
        {
            "id": h.id,
            "filename": h.filename,
            "uploaded_by": str(h.uploaded_by) if h.uploaded_by else None,
            "uploaded_by_name": h.uploader.name if h.uploader else None,
            "uploaded_at": as_utc(h.uploaded_at).isoformat(),
            "status": h.status,
            "logs": h.logs,
        }
        for h in result.scalars().all()
    ]

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": items,
    }


async def _create_or_409(db: AsyncSession, user_id: uuid.UUID, record: DtrRecord) -> DtrEntryResponse:
    try:
        entry = await create_dtr_entry(db, user_id, record)
    except DtrEntryRejected as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.reason)
    await db.commit()
    await db.refresh(entry)
    return to_response(entry)


@router.post(
    "/import-entry",
    response_model=DtrEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a single imported entry for the current user",
)
async def import_entry(
    body: DtrEntryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DtrEntryResponse:
    return await _create_or_409(db, current_user.id, body.to_record())


@router.post(
    "/create",
    response_model=DtrEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an entry for any user (admin)",
)
async def admin_create(
    body: AdminDtrCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
) -> DtrEntryResponse:
    user_id = body.user_id or current_user.id
    if body.user_id is not None:
        target = await db.get(User, user_id)
        if target is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    record = DtrRecord(**body.model_dump(exclude={"user_id"}))
    return await _create_or_409(db, user_id, record)


@router.get("/me", response_model=list[DtrEntryResponse], summary="Own entries")
async def my_entries(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[DtrEntryResponse]:
    result = await db.execute(
        select(DtrEntry)
        .where(DtrEntry.user_id == current_user.id)
        .order_by(DtrEntry.work_date.desc(), DtrEntry.time_in.desc())
    )
    return [to_response(e) for e in result.scalars().all()]


@router.post(
    "/timein",
    response_model=DtrEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Clock in for today",
)
async def time_in(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DtrEntryResponse:
    today = local_today()
    existing = await db.execute(
        select(DtrEntry.id).where(
            DtrEntry.user_id == current_user.id,
            DtrEntry.work_date == today,
        )
    )
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Already timed in today.",
        )

    record = DtrRecord(date=today, time_in=now_utc())
    logger.info("User %s timed in for %s", current_user.id, today)
    return await _create_or_409(db, current_user.id, record)


@router.patch("/timeout", response_model=DtrEntryResponse, summary="Clock out for today")
async def time_out(
    body: TimeOutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DtrEntryResponse:
    result = await db.execute(
        select(DtrEntry)
        .where(
            DtrEntry.user_id == current_user.id,
            DtrEntry.work_date == local_today(),
            DtrEntry.time_out.is_(None),
        )
        .order_by(DtrEntry.time_in.desc())
        .limit(1)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No active DTR entry for today.",
        )

    ended = now_utc()
    entry.time_out = ended
    entry.hours_worked = round(hours_between(as_utc(entry.time_in), ended), 2)
    entry.accomplishment = (body.accomplishment or "").strip() or _DEFAULT_ACCOMPLISHMENT
    await db.commit()
    await db.refresh(entry)

    logger.info("User %s timed out: %.2f h", current_user.id, entry.hours_worked)
    return to_response(entry)


@router.get(
    "/accomplishments/{member_id}",
    response_model=list[DtrEntryResponse],
    summary="A team member's entries for one day",
)
async def member_accomplishments(
    member_id: uuid.UUID,
    day: date | None = Query(default=None, alias="date"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> list[DtrEntryResponse]:
    member = await db.get(User, member_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not can_view_user(current_user, member):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view accomplishments of your own team members",
        )

    result = await db.execute(
        select(DtrEntry)
        .where(
            DtrEntry.user_id == member_id,
            DtrEntry.work_date == (day or local_today()),
        )
        .order_by(DtrEntry.time_in)
    )
    return [to_response(e) for e in result.scalars().all()]


@router.patch(
    "/{entry_id}",
    response_model=DtrEntryResponse,
    summary="Edit the accomplishment of an own entry",
)
async def update_accomplishment(
    entry_id: int,
    body: AccomplishmentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DtrEntryResponse:
    entry = await db.get(DtrEntry, entry_id)
    if entry is None or entry.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="DTR entry not found")

    entry.accomplishment = body.accomplishment
    await db.commit()
    await db.refresh(entry)
    return to_response(entry)
