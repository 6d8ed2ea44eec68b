import logging
import math
import uuid
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tms.core.clock import local_today
from tms.core.middleware import (
    SUPERVISOR_ROLES,
    can_view_user,
    get_current_user,
    require_role,
    require_supervisor,
)
from tms.core.security import hash_password
from tms.db.models import DtrEntry, User
from tms.db.session import get_db
from tms.schemas.user import (
    RequiredHoursUpdate,
    TeamHoursSummary,
    TeamMemberStatus,
    TotalHoursResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from tms.services.hours import completed, day_status, hours_progress, total_completed_hours

logger = logging.getLogger(__name__)

router = APIRouter()

# Roles each supervisor role may take under supervision
_SUPERVISABLE: dict[str, tuple[str, ...]] = {
    "unit_manager": ("staff", "intern"),
    "admin": ("unit_manager", "staff", "intern"),
}


def _to_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


async def _get_user_or_404(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


async def _supervised_users(db: AsyncSession, supervisor: User) -> list[User]:
    result = await db.execute(
        select(User).where(User.supervisor_id == supervisor.id).order_by(User.name)
    )
    return list(result.scalars().all())


async def _total_hours(db: AsyncSession, user: User) -> TotalHoursResponse:
    result = await db.execute(select(DtrEntry).where(DtrEntry.user_id == user.id))
    entries = result.scalars().all()
    total = total_completed_hours(entries)
    remaining, progress = hours_progress(total, user.required_hours)
    return TotalHoursResponse(
        user_id=user.id,
        name=user.name,
        role=user.role,
        total_hours_worked=total,
        required_hours=user.required_hours,
        remaining_hours=remaining,
        progress_pct=progress,
        completed_entries=len(completed(entries)),
    )


@router.post(
    "/",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user (admin only)",
)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> UserResponse:
    email = body.email.strip().lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Email '{email}' is already registered",
        )

    user = User(
        name=body.name,
        email=email,
        password_hash=hash_password(body.password),
        role=body.role,
        required_hours=body.required_hours,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return _to_response(user)


@router.get(
    "/",
    summary="List users with pagination and optional name search",
)
async def list_users(
    search: str | None = Query(default=None, description="Filter by name or email (partial, case-insensitive)"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_supervisor),
) -> dict:
    q = select(User)
    count_q = select(func.count(User.id))
    if search:
        match = User.name.icontains(search, autoescape=True) | User.email.icontains(
            search, autoescape=True
        )
        q = q.where(match)
        count_q = count_q.where(match)

    total = (await db.execute(count_q)).scalar_one()
    result = await db.execute(
        q.order_by(User.name).offset((page - 1) * per_page).limit(per_page)
    )

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": [_to_response(u) for u in result.scalars().all()],
    }


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current authenticated user profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    return _to_response(current_user)


@router.get(
    "/team",
    response_model=list[UserResponse],
    summary="Users supervised by the current user",
)
async def get_team(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[UserResponse]:
    return [_to_response(u) for u in await _supervised_users(db, current_user)]


@router.get(
    "/available",
    response_model=list[UserResponse],
    summary="Active users without a supervisor",
)
async def get_available(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> list[UserResponse]:
    result = await db.execute(
        select(User)
        .where(
            User.supervisor_id.is_(None),
            User.is_active == True,  # noqa: E712
            User.id != current_user.id,
            User.role.in_(_SUPERVISABLE[current_user.role]),
        )
        .order_by(User.name)
    )
    return [_to_response(u) for u in result.scalars().all()]


@router.get(
    "/team-status",
    response_model=list[TeamMemberStatus],
    summary="Today's clock status of every supervised user",
)
async def get_team_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> list[TeamMemberStatus]:
    members = await _supervised_users(db, current_user)
    if not members:
        return []

    result = await db.execute(
        select(DtrEntry).where(
            DtrEntry.user_id.in_([m.id for m in members]),
            DtrEntry.work_date == local_today(),
        )
    )
    by_user: dict[uuid.UUID, list[DtrEntry]] = defaultdict(list)
    for entry in result.scalars().all():
        by_user[entry.user_id].append(entry)

    statuses = []
    for member in members:
        day = day_status(by_user.get(member.id, []))
        statuses.append(
            TeamMemberStatus(
                id=member.id,
                name=member.name,
                email=member.email,
                role=member.role,
                current_status=day.current_status,
                last_clock_in=day.last_clock_in,
                last_clock_out=day.last_clock_out,
                today_hours=day.today_hours,
                is_first_time_today=day.current_status == "never_clocked",
            )
        )
    return statuses


@router.get(
    "/team-hours-summary",
    response_model=TeamHoursSummary,
    summary="Total hours of every supervised user",
)
async def get_team_hours_summary(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> TeamHoursSummary:
    members = [await _total_hours(db, m) for m in await _supervised_users(db, current_user)]
    return TeamHoursSummary(
        total_members=len(members),
        total_hours_worked=round(sum(m.total_hours_worked for m in members), 2),
        members=members,
    )


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update user role, active status, name or required hours (admin only)",
)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> UserResponse:
    user = await _get_user_or_404(db, user_id)

    if body.role is not None:
        user.role = body.role

    if body.is_active is not None:
        if user_id == _current_user.id and not body.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You cannot deactivate yourself; only another admin can deactivate you",
            )
        user.is_active = body.is_active

    if body.name is not None:
        user.name = body.name

    if body.required_hours is not None:
        user.required_hours = body.required_hours

    await db.commit()
    await db.refresh(user)
    return _to_response(user)


@router.post(
    "/{user_id}/supervisor",
    response_model=UserResponse,
    summary="Take a user under the current user's supervision",
)
async def assign_supervisor(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_supervisor),
) -> UserResponse:
    user = await _get_user_or_404(db, user_id)

    if user.supervisor_id is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already has a supervisor",
        )

    if user.id == current_user.id or user.role not in _SUPERVISABLE[current_user.role]:
        detail = (
            "Unit managers can only supervise staff and interns"
            if current_user.role == "unit_manager"
            else "Invalid supervision assignment"
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    user.supervisor_id = current_user.id
    await db.commit()
    await db.refresh(user)
    logger.info("User %s now supervised by %s", user.id, current_user.id)
    return _to_response(user)


@router.delete(
    "/{user_id}/supervisor",
    response_model=UserResponse,
    summary="Release a user from the current user's supervision",
)
async def remove_supervisor(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(*SUPERVISOR_ROLES)),
) -> UserResponse:
    user = await _get_user_or_404(db, user_id)

    if user.supervisor_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is not under your supervision",
        )

    user.supervisor_id = None
    await db.commit()
    await db.refresh(user)
    logger.info("User %s released from supervision by %s", user.id, current_user.id)
    return _to_response(user)


@router.get(
    "/{user_id}/total-hours",
    response_model=TotalHoursResponse,
    summary="Total completed hours against required hours",
)
async def get_total_hours(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TotalHoursResponse:
    user = await _get_user_or_404(db, user_id)
    if not can_view_user(current_user, user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this user's hours",
        )
    return await _total_hours(db, user)


@router.patch(
    "/{user_id}/required-hours",
    response_model=UserResponse,
    summary="Set required hours (self or admin)",
)
async def set_required_hours(
    user_id: uuid.UUID,
    body: RequiredHoursUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    if current_user.id != user_id and current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update your own required hours",
        )

    user = await _get_user_or_404(db, user_id)
    user.required_hours = body.required_hours
    await db.commit()
    await db.refresh(user)
    return _to_response(user)
