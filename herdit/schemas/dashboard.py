from datetime import datetime

from pydantic import BaseModel


class RecentRequest(BaseModel):
    id: str
    title: str
    status: str
    type: str
    group: str | None
    created_by: str | None
    created_at: datetime


class DashboardStats(BaseModel):
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    total_requests: int
    recent_requests: list[RecentRequest]


class ReportRow(BaseModel):
    id: str
    type: str
    title: str
    status: str
    created_by: str | None
    created_at: datetime
    group_name: str | None
    approval_status: str | None


class GroupOption(BaseModel):
    id: str
    name: str


class ReportResponse(BaseModel):
    data: list[ReportRow]
    available_groups: list[GroupOption]
