from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.database import get_db
from herdit.core.security import create_access_token, get_current_user
from herdit.models.user import User
from herdit.schemas.auth import LoginRequest, ProfileUpdate, RegisterRequest, TokenResponse, UserResponse
from herdit.services.auth_service import authenticate_user, register_user, update_profile

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    user = await register_user(db, name=body.name, email=body.email, password=body.password)
    return TokenResponse(access_token=create_access_token(subject=user.email))


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    token = await authenticate_user(db, email=body.email, password=body.password)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return TokenResponse(access_token=token)


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await update_profile(db, current_user, name=body.name, password=body.password)
