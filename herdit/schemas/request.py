from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class RequestStatusEnum(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ChangeTypeEnum(StrEnum):
    HARDWARE = "hardware"
    SOFTWARE = "software"
    NETWORK = "network"
    OTHER = "other"


class PriorityEnum(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AssetTypeEnum(StrEnum):
    HARDWARE = "hardware"
    SOFTWARE = "software"
    PERIPHERAL = "peripheral"
    OTHER = "other"


class AssetCategoryEnum(StrEnum):
    LAPTOP = "laptop"
    DESKTOP = "desktop"
    MONITOR = "monitor"
    SOFTWARE = "software"
    MOBILE = "mobile"
    ACCESSORY = "accessory"
    OTHER = "other"


# ── Typed payloads, one per RequestType.kind ──────────────────────────


class ChangeRequestData(BaseModel):
    kind: Literal["change"] = "change"
    change_type: ChangeTypeEnum
    priority: PriorityEnum
    implementation_date: date
    impact: str = Field(..., min_length=10)
    rollback_plan: str = Field(..., min_length=10)


class AssetRequestData(BaseModel):
    kind: Literal["asset"] = "asset"
    asset_type: AssetTypeEnum
    asset_category: AssetCategoryEnum
    quantity: int = Field(..., ge=1)
    justification: str = Field(..., min_length=10)
    needed_by: date
    additional_info: str | None = None


class GenericRequestData(BaseModel):
    model_config = ConfigDict(extra="allow")

    kind: Literal["generic"] = "generic"


RequestData = Annotated[
    ChangeRequestData | AssetRequestData | GenericRequestData,
    Field(discriminator="kind"),
]
request_data_adapter: TypeAdapter[RequestData] = TypeAdapter(RequestData)


# ── Requests ──────────────────────────────────────────────────────────


class AttachmentCreate(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1)
    file_size: str | None = None
    file_type: str | None = None


class AttachmentsAdd(BaseModel):
    attachments: list[AttachmentCreate] = Field(..., min_length=1)


class RequestCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    request_type_id: str = Field(..., min_length=1)
    data: dict = Field(default_factory=dict)
    attachments: list[AttachmentCreate] = Field(default_factory=list)


class AttachmentRead(BaseModel):
    id: str
    file_name: str
    file_url: str
    file_size: str | None
    file_type: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupBrief(BaseModel):
    id: str
    name: str

    model_config = {"from_attributes": True}


class RequestTypeRead(BaseModel):
    id: str
    name: str
    description: str | None
    kind: str
    group_id: str | None
    group: GroupBrief | None = None
    form_schema: dict

    model_config = {"from_attributes": True}


class RequestApprovalRead(BaseModel):
    id: str
    approver_id: str
    status: str
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RequestRead(BaseModel):
    id: str
    title: str
    description: str
    user_id: str
    request_type_id: str
    data: dict
    status: RequestStatusEnum
    created_at: datetime
    updated_at: datetime
    approvals: list[RequestApprovalRead] = []
    attachments: list[AttachmentRead] = []

    model_config = {"from_attributes": True}


class RequestListItem(BaseModel):
    id: str
    title: str
    user_id: str
    request_type_id: str
    status: RequestStatusEnum
    created_at: datetime

    model_config = {"from_attributes": True}


class RequestDecision(BaseModel):
    status: Literal["approved", "rejected"]
    notes: str | None = None
