"""Permission tiers.

A caller's roles are resolved once per HTTP call into a ``Principal`` carrying
a single ``Tier``; call sites branch on the tier instead of scanning roles.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from fastapi import Depends, HTTPException, status

from herdit.core.security import get_current_user
from herdit.models.user import User


class Tier(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


ROLE_ALIASES = {
    "admin": Tier.ADMIN.value,
    "administrator": Tier.ADMIN.value,
    "manager": Tier.MANAGER.value,
    "user": Tier.USER.value,
}


def normalize_role(role: str) -> str:
    return ROLE_ALIASES.get(role.strip().lower(), role.strip().lower())


def resolve_tier(role_names: Iterable[str]) -> Tier:
    normalized = {normalize_role(name) for name in role_names}
    if Tier.ADMIN.value in normalized:
        return Tier.ADMIN
    if Tier.MANAGER.value in normalized:
        return Tier.MANAGER
    return Tier.USER


@dataclass(frozen=True)
class Principal:
    id: str
    email: str
    tier: Tier
    name: str = ""
    group_ids: frozenset[str] = field(default_factory=frozenset)
    approver_id: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            tier=resolve_tier(role.name for role in user.roles),
            group_ids=frozenset(group.id for group in user.groups),
            approver_id=user.approver_id,
        )

    @property
    def is_admin(self) -> bool:
        return self.tier is Tier.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.tier is Tier.MANAGER

    @property
    def can_approve(self) -> bool:
        return self.tier in (Tier.ADMIN, Tier.MANAGER)

    def in_group(self, group_id: str | None) -> bool:
        return group_id is not None and group_id in self.group_ids


async def get_current_principal(current_user: User = Depends(get_current_user)) -> Principal:
    return Principal.from_user(current_user)


def require_tier(*tiers: Tier):
    """FastAPI dependency that checks the caller's tier. Admins always pass."""

    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.is_admin:
            return principal
        if principal.tier not in tiers:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Tier '{principal.tier.value}' not authorized. Required: {[t.value for t in tiers]}",
            )
        return principal

    return _check
