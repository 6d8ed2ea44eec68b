"""
Seed script: creates the default admin account if it is missing.

Usage (inside container):
    python -m tms.db.seed
"""

import asyncio

from sqlalchemy import select

from tms.core.security import hash_password
from tms.db.models import User
from tms.db.session import AsyncSessionLocal

ADMIN_EMAIL = "admin@teambabe.local"
ADMIN_PASSWORD = "admin123"


async def create_admin(session) -> User:
    result = await session.execute(select(User).where(User.email == ADMIN_EMAIL))
    admin = result.scalar_one_or_none()
    if admin:
        print(f"Admin user already exists ({admin.email}), skipping.")
        return admin

    admin = User(
        name="System Administrator",
        email=ADMIN_EMAIL,
        password_hash=hash_password(ADMIN_PASSWORD),
        role="admin",
        is_active=True,
    )
    session.add(admin)
    await session.flush()
    print(f"Created admin user: id={admin.id} email={admin.email}")
    return admin


async def main():
    async with AsyncSessionLocal() as session:
        async with session.begin():
            await create_admin(session)
    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(main())
