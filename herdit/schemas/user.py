from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role_ids: list[str] = Field(default_factory=list)
    group_ids: list[str] = Field(default_factory=list)
    approver_id: str | None = None
    is_two_factor_enabled: bool = False


class UserUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    password: str | None = Field(None, min_length=6)
    role_ids: list[str] | None = None
    group_ids: list[str] | None = None
    approver_id: str | None = None
    is_two_factor_enabled: bool | None = None
    is_active: bool | None = None
