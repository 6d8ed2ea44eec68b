"""
conftest.py — shared fixtures for the API and service tests.

Strategy:
- Every test gets its own in-memory SQLite database (aiosqlite + StaticPool),
  created from the ORM metadata; the app's ``get_db`` dependency is overridden
  to hand out sessions bound to it.
- Users are created directly in the database; access tokens are minted with
  ``create_access_token`` so tests do not depend on the login endpoint.
"""

from __future__ import annotations

import io
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["TIMEZONE"] = "Asia/Manila"

import uuid
from collections.abc import Awaitable, Callable

import openpyxl
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tms.core.security import create_access_token, hash_password
from tms.db.models import Base, User
from tms.db.session import get_db
from tms.main import app

DEFAULT_PASSWORD = "Passw0rd!"

UserFactory = Callable[..., Awaitable[dict]]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory() -> async_sessionmaker[AsyncSession]:
    """Fresh in-memory database per test with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    yield factory
    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    """Provides a raw DB session for direct DB queries in tests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncClient:
    """Fresh HTTPX async client per test function (maintains cookie jar)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def auth_headers(user_id: uuid.UUID, role: str) -> dict:
    token = create_access_token({"sub": str(user_id), "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def user_factory(session_factory) -> UserFactory:
    """
    Returns ``create(role=..., name=..., supervisor_id=..., ...)`` which
    inserts a user and returns a dict with id, name, email, password, role
    and ready-to-use ``headers``.
    """

    async def create(
        role: str = "intern",
        name: str | None = None,
        email: str | None = None,
        supervisor_id: uuid.UUID | None = None,
        required_hours: float | None = None,
        is_active: bool = True,
    ) -> dict:
        uid_short = uuid.uuid4().hex[:8]
        name = name or f"QA {role.title()} {uid_short}"
        email = email or f"qa_{role}_{uid_short}@example.com"
        async with session_factory() as session:
            user = User(
                name=name,
                email=email,
                password_hash=hash_password(DEFAULT_PASSWORD),
                role=role,
                supervisor_id=supervisor_id,
                required_hours=required_hours,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            user_id = user.id

        return {
            "id": user_id,
            "name": name,
            "email": email,
            "password": DEFAULT_PASSWORD,
            "role": role,
            "headers": auth_headers(user_id, role),
        }

    return create


@pytest_asyncio.fixture
async def admin_user(user_factory: UserFactory) -> dict:
    return await user_factory(role="admin", name="QA Admin")


@pytest_asyncio.fixture
async def manager_user(user_factory: UserFactory) -> dict:
    return await user_factory(role="unit_manager", name="QA Manager")


@pytest_asyncio.fixture
async def intern_user(user_factory: UserFactory) -> dict:
    return await user_factory(role="intern", name="QA Intern")


@pytest_asyncio.fixture
async def supervised_intern(user_factory: UserFactory, manager_user: dict) -> dict:
    """An intern already on ``manager_user``'s team."""
    return await user_factory(
        role="intern", name="Juan Dela Cruz", supervisor_id=manager_user["id"]
    )


# ---------------------------------------------------------------------------
# Upload helpers
# ---------------------------------------------------------------------------

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def build_xlsx(rows: list[list], title_rows: int = 0) -> bytes:
    """Workbook with optional title rows above the header row."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "DTR"
    for i in range(title_rows):
        ws.append([f"Daily Time Record {i + 1}"])
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def sample_csv() -> bytes:
    return (
        b"date,timeIn,timeOut,accomplishment\n"
        b"2024-01-15,09:00 AM,05:30 PM,Finished onboarding\n"
        b"2024-01-16,08:30 AM,,\n"
    )
