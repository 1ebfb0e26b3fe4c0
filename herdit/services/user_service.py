"""Administrative user management: roles, groups and designated approvers."""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.errors import Conflict, NotFound, ValidationError
from herdit.core.security import hash_password
from herdit.models.approval import Approval
from herdit.models.request import Request
from herdit.models.user import Group, Role, User
from herdit.schemas.user import UserCreate, UserUpdate
from herdit.utils.logging import get_logger

logger = get_logger(__name__)


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return list(result.scalars().all())


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id).execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def list_roles(db: AsyncSession) -> list[Role]:
    result = await db.execute(select(Role).order_by(Role.name))
    return list(result.scalars().all())


async def list_groups(db: AsyncSession) -> list[Group]:
    result = await db.execute(select(Group).order_by(Group.name))
    return list(result.scalars().all())


async def _load_many(db: AsyncSession, model, ids: list[str]) -> list:
    if not ids:
        return []
    result = await db.execute(select(model).where(model.id.in_(ids)))
    found = list(result.scalars().all())
    missing = set(ids) - {item.id for item in found}
    if missing:
        raise ValidationError(f"Unknown {model.__tablename__}: {sorted(missing)}")
    return found


async def validate_approver(db: AsyncSession, user_id: str | None, approver_id: str | None) -> None:
    """Reject unknown approvers, self-approval and cycles in the approver chain."""
    if approver_id is None:
        return
    if approver_id == user_id:
        raise Conflict("A user cannot be their own approver")
    if await get_user(db, approver_id) is None:
        raise ValidationError("Approver not found")
    if user_id is None:
        return

    seen: set[str] = set()
    current: str | None = approver_id
    while current is not None and current not in seen:
        if current == user_id:
            raise Conflict("Approver assignment would create a cycle")
        seen.add(current)
        current = (await db.execute(select(User.approver_id).where(User.id == current))).scalar_one_or_none()


async def create_user(db: AsyncSession, body: UserCreate) -> User:
    email = body.email.lower()
    if (await db.execute(select(User.id).where(User.email == email))).first() is not None:
        raise Conflict("Email already registered")
    await validate_approver(db, None, body.approver_id)

    user = User(
        name=body.name,
        email=email,
        hashed_password=hash_password(body.password),
        approver_id=body.approver_id,
        is_two_factor_enabled=body.is_two_factor_enabled,
    )
    user.roles = await _load_many(db, Role, body.role_ids)
    user.groups = await _load_many(db, Group, body.group_ids)
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise Conflict("Email already registered") from exc
    logger.info("[USERS] created %s", user.email)
    return await get_user(db, user.id)


async def update_user(db: AsyncSession, user_id: str, body: UserUpdate) -> User:
    user = await get_user(db, user_id)
    if user is None:
        raise NotFound("User not found")

    data = body.model_dump(exclude_unset=True)
    if "approver_id" in data:
        await validate_approver(db, user.id, data["approver_id"])
        user.approver_id = data["approver_id"]
    if data.get("email") is not None:
        email = data["email"].lower()
        clash = (await db.execute(select(User.id).where(User.email == email, User.id != user.id))).first()
        if clash is not None:
            raise Conflict("Email already registered")
        user.email = email
    if data.get("password"):
        user.hashed_password = hash_password(data["password"])
    for key in ("name", "is_two_factor_enabled", "is_active"):
        if data.get(key) is not None:
            setattr(user, key, data[key])
    if data.get("role_ids") is not None:
        user.roles = await _load_many(db, Role, data["role_ids"])
    if data.get("group_ids") is not None:
        user.groups = await _load_many(db, Group, data["group_ids"])

    try:
        await db.flush()
    except IntegrityError as exc:
        raise Conflict("Email already registered") from exc
    return await get_user(db, user.id)


async def delete_user(db: AsyncSession, user_id: str) -> None:
    user = await get_user(db, user_id)
    if user is None:
        raise NotFound("User not found")
    owned = (await db.execute(select(func.count()).select_from(Request).where(Request.user_id == user_id))).scalar_one()
    if owned:
        raise Conflict("User has submitted requests and cannot be deleted")
    assigned = (
        await db.execute(select(func.count()).select_from(Approval).where(Approval.approver_id == user_id))
    ).scalar_one()
    if assigned:
        raise Conflict("User is the approver of existing approvals and cannot be deleted")
    await db.delete(user)
    await db.flush()
    logger.info("[USERS] deleted %s", user.email)
