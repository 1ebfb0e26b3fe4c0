from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RoleRead(BaseModel):
    id: str
    name: str
    description: str | None

    model_config = {"from_attributes": True}


class GroupRead(BaseModel):
    id: str
    name: str
    description: str | None

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    approver_id: str | None
    is_two_factor_enabled: bool
    is_active: bool
    roles: list[RoleRead] = []
    groups: list[GroupRead] = []

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    password: str | None = Field(None, min_length=6)
