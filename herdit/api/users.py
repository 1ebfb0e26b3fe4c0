from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.database import get_db
from herdit.core.rbac import Principal, Tier, get_current_principal, require_tier
from herdit.schemas.auth import GroupRead, RoleRead, UserResponse
from herdit.schemas.user import UserCreate, UserUpdate
from herdit.services import user_service

router = APIRouter(tags=["users"])


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    db: AsyncSession = Depends(get_db),
    _=Depends(require_tier(Tier.ADMIN)),
):
    return await user_service.list_users(db)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _=Depends(require_tier(Tier.ADMIN)),
):
    return await user_service.create_user(db, body)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _=Depends(require_tier(Tier.ADMIN)),
):
    user = await user_service.get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _=Depends(require_tier(Tier.ADMIN)),
):
    return await user_service.update_user(db, user_id, body)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_tier(Tier.ADMIN)),
):
    if user_id == principal.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    await user_service.delete_user(db, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/roles", response_model=list[RoleRead])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    _=Depends(get_current_principal),
):
    return await user_service.list_roles(db)


@router.get("/groups", response_model=list[GroupRead])
async def list_groups(
    db: AsyncSession = Depends(get_db),
    _=Depends(get_current_principal),
):
    return await user_service.list_groups(db)
