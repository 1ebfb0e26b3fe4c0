"""Create the schema, seed reference data and optionally an admin account.

Usage: python -m herdit.scripts.setup_db [--admin-email EMAIL --admin-password PASSWORD]
ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME are read from the environment when the flags are absent.
"""

import argparse
import asyncio
import os

from sqlalchemy import select

from herdit.core.config import settings
from herdit.core.database import AsyncSessionLocal, engine
from herdit.core.security import hash_password
from herdit.models.base import Base
from herdit.models.user import Role, User
from herdit.services.seed_service import seed_reference_data
from herdit.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def ensure_admin(db, email: str, password: str, name: str) -> User:
    email = email.lower()
    admin_role = (await db.execute(select(Role).where(Role.name == "admin"))).scalar_one()
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None:
        user = User(name=name, email=email, hashed_password=hash_password(password))
        user.roles = [admin_role]
        db.add(user)
        logger.info("Admin %s created", email)
    elif admin_role not in user.roles:
        user.roles = [*user.roles, admin_role]
        logger.info("Admin role granted to %s", email)
    await db.flush()
    return user


async def setup(admin_email: str | None, admin_password: str | None, admin_name: str) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        await seed_reference_data(db)
        if admin_email and admin_password:
            await ensure_admin(db, admin_email, admin_password, admin_name)
        await db.commit()
    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialise the herdit database")
    parser.add_argument("--admin-email", default=os.environ.get("ADMIN_EMAIL"))
    parser.add_argument("--admin-password", default=os.environ.get("ADMIN_PASSWORD"))
    parser.add_argument("--admin-name", default=os.environ.get("ADMIN_NAME", "Administrator"))
    args = parser.parse_args()

    configure_logging(settings.log_level)
    asyncio.run(setup(args.admin_email, args.admin_password, args.admin_name))


if __name__ == "__main__":
    main()
