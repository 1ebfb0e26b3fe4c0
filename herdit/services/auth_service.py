from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.errors import Conflict
from herdit.core.rbac import Tier
from herdit.core.security import create_access_token, hash_password, verify_password
from herdit.models.user import Role, User


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def register_user(db: AsyncSession, name: str, email: str, password: str) -> User:
    """Self-registration always yields the plain ``user`` role."""
    if await get_user_by_email(db, email) is not None:
        raise Conflict("Email already registered")

    user = User(name=name, email=email.lower(), hashed_password=hash_password(password))
    role = (await db.execute(select(Role).where(Role.name == Tier.USER.value))).scalar_one_or_none()
    if role is not None:
        user.roles = [role]
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost a race against a concurrent registration of the same address.
        raise Conflict("Email already registered") from exc
    await db.refresh(user)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> str | None:
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return create_access_token(subject=user.email)


async def update_profile(db: AsyncSession, user: User, name: str | None = None, password: str | None = None) -> User:
    if name is not None:
        user.name = name
    if password is not None:
        user.hashed_password = hash_password(password)
    await db.flush()
    await db.refresh(user)
    return user
