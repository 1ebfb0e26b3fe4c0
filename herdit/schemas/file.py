from datetime import datetime

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    id: str
    url: str
    name: str
    size: int
    type: str
    attachment_id: str | None = None


class FileTokenCreate(BaseModel):
    file_id: str | None = None
    file_name: str = Field(..., min_length=1)
    file_type: str | None = None
    request_id: str | None = None


class FileTokenResponse(BaseModel):
    token: str
    expires: datetime
    download_url: str


class CleanupDetails(BaseModel):
    deleted_files: int
    deleted_tokens: int
    failed: int
    force_clean: bool


class CleanupResponse(BaseModel):
    success: bool
    message: str
    details: CleanupDetails
