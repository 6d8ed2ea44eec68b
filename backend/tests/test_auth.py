"""
Auth Flow Tests.

Tests:
  - test_signup_*          : POST /api/auth/signup → 201 / 409 / 403 / 422
  - test_login_*           : POST /api/auth/login → 200 / 401 / 403
  - test_refresh_*         : POST /api/auth/refresh with and without cookie
  - test_logout            : POST /api/auth/logout → 204
"""

from httpx import AsyncClient
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tms.core.config import settings
from tms.core.security import verify_password
from tms.db.models import User


class TestSignup:
    async def test_signup_creates_intern(
        self,
        client: AsyncClient,
        db: AsyncSession,
    ) -> None:
        payload = {
            "name": "Maria Santos",
            "email": "Maria.Santos@Example.com",
            "password": "secret1",
        }
        resp = await client.post("/api/auth/signup", json=payload)
        assert resp.status_code == 201, resp.text
        assert resp.json()["token_type"] == "bearer"
        assert "refresh_token" in resp.cookies

        result = await db.execute(select(User).where(User.email == "maria.santos@example.com"))
        user = result.scalar_one()
        assert user.role == "intern"
        assert user.password_hash != payload["password"], "Password must be hashed in DB"
        assert verify_password(payload["password"], user.password_hash)

        claims = jwt.decode(
            resp.json()["access_token"], settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        assert claims["sub"] == str(user.id)
        assert claims["type"] == "access"

    async def test_signup_duplicate_email(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        payload = {"name": "Copy", "email": intern_user["email"], "password": "secret1"}
        resp = await client.post("/api/auth/signup", json=payload)
        assert resp.status_code == 409, resp.text

    async def test_signup_cannot_self_assign_admin(self, client: AsyncClient) -> None:
        payload = {"name": "Boss", "email": "boss@example.com", "password": "secret1", "role": "admin"}
        resp = await client.post("/api/auth/signup", json=payload)
        assert resp.status_code == 403, resp.text

    async def test_signup_short_password(self, client: AsyncClient) -> None:
        payload = {"name": "Short", "email": "short@example.com", "password": "abc"}
        resp = await client.post("/api/auth/signup", json=payload)
        assert resp.status_code == 422


class TestLogin:
    async def test_login_success(
        self,
        client: AsyncClient,
        manager_user: dict,
    ) -> None:
        resp = await client.post(
            "/api/auth/login",
            json={"email": manager_user["email"].upper(), "password": manager_user["password"]},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["access_token"]
        assert "refresh_token" in resp.cookies

    async def test_login_wrong_password(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        resp = await client.post(
            "/api/auth/login",
            json={"email": intern_user["email"], "password": "WrongPassword!"},
        )
        assert resp.status_code == 401, resp.text

    async def test_login_unknown_email(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": "whatever"},
        )
        assert resp.status_code == 401

    async def test_login_inactive_user(
        self,
        client: AsyncClient,
        user_factory,
    ) -> None:
        inactive = await user_factory(role="staff", is_active=False)
        resp = await client.post(
            "/api/auth/login",
            json={"email": inactive["email"], "password": inactive["password"]},
        )
        assert resp.status_code == 403, resp.text


class TestRefreshAndLogout:
    async def test_refresh_issues_working_token(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        await client.post(
            "/api/auth/login",
            json={"email": intern_user["email"], "password": intern_user["password"]},
        )

        resp = await client.post("/api/auth/refresh")
        assert resp.status_code == 200, resp.text
        token = resp.json()["access_token"]

        me = await client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == intern_user["email"]

    async def test_refresh_without_cookie_returns_401(self, client: AsyncClient) -> None:
        resp = await client.post("/api/auth/refresh")
        assert resp.status_code == 401, resp.text

    async def test_logout_clears_cookie(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        await client.post(
            "/api/auth/login",
            json={"email": intern_user["email"], "password": intern_user["password"]},
        )
        resp = await client.post("/api/auth/logout")
        assert resp.status_code == 204

        after = await client.post("/api/auth/refresh")
        assert after.status_code == 401
