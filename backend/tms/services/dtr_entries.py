"""
DTR entry creation.

Every way of adding a time record (clock-in, admin create, single
``import-entry`` and file import) goes through ``create_dtr_entry`` so the
duplicate check and UTC storage rules live in one place.
"""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tms.core.clock import as_local, as_utc
from tms.db.models import DtrEntry
from tms.schemas.dtr import DtrEntryResponse, DtrRecord

logger = logging.getLogger(__name__)


class DtrEntryRejected(Exception):
    """A well-formed record was refused; ``reason`` is shown to the user."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass
class SubmissionResult:
    accepted: int = 0
    errors: list[str] = field(default_factory=list)


def to_response(entry: DtrEntry) -> DtrEntryResponse:
    return DtrEntryResponse(
        id=entry.id,
        user_id=entry.user_id,
        date=entry.work_date,
        time_in=as_utc(entry.time_in),
        time_out=as_utc(entry.time_out) if entry.time_out else None,
        hours_worked=entry.hours_worked,
        accomplishment=entry.accomplishment,
    )


async def create_dtr_entry(
    db: AsyncSession,
    user_id: uuid.UUID,
    record: DtrRecord,
) -> DtrEntry:
    """
    Insert one entry for ``user_id`` and flush it.

    Raises DtrEntryRejected when the user already has an entry starting at
    the same instant.
    """
    time_in = as_utc(record.time_in)
    time_out = as_utc(record.time_out) if record.time_out else None

    existing = await db.execute(
        select(DtrEntry.id).where(
            DtrEntry.user_id == user_id,
            DtrEntry.time_in == time_in,
        )
    )
    if existing.first() is not None:
        raise DtrEntryRejected(
            f"Entry already exists for {record.date.isoformat()} "
            f"at {as_local(time_in).strftime('%H:%M')}"
        )

    entry = DtrEntry(
        user_id=user_id,
        work_date=record.date,
        time_in=time_in,
        time_out=time_out,
        hours_worked=round(record.hours_worked, 2),
        accomplishment=record.accomplishment or "",
    )
    db.add(entry)
    await db.flush()
    return entry


async def submit_records(
    db: AsyncSession,
    user_id: uuid.UUID,
    records: list[tuple[int, DtrRecord]],
) -> SubmissionResult:
    """
    Create entries one at a time in row order.

    A rejected row is recorded as ``Row N: <reason>`` and the next row is
    still submitted.
    """
    result = SubmissionResult()
    for row_num, record in records:
        try:
            await create_dtr_entry(db, user_id, record)
        except DtrEntryRejected as exc:
            msg = f"Row {row_num}: {exc.reason}"
            logger.warning("Rejected DTR row for user %s: %s", user_id, msg)
            result.errors.append(msg)
            continue
        result.accepted += 1
    return result
