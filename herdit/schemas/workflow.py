from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class ApprovalDecision(BaseModel):
    status: Literal["approved", "rejected"]
    notes: str | None = None


class ApprovalInboxItem(BaseModel):
    id: str
    status: str
    created_at: datetime
    request_id: str
    title: str
    request_type: str
    requested_by: str
    approver_id: str


class AuditLogRead(BaseModel):
    id: str
    request_id: str | None
    user_id: str | None
    action: str
    details: dict | None
    timestamp: datetime

    model_config = {"from_attributes": True}
