from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from herdit.models.base import Base, TimestampMixin, new_id, utcnow
from herdit.models.user import Group, User

if TYPE_CHECKING:
    from herdit.models.approval import Approval


class RequestKind:
    CHANGE = "change"
    ASSET = "asset"
    GENERIC = "generic"


class RequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestType(TimestampMixin, Base):
    __tablename__ = "request_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(String(16), default=RequestKind.GENERIC, nullable=False)
    group_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("groups.id"), nullable=True)
    # Advisory form description for clients; payloads are validated by kind, not by this.
    form_schema: Mapped[dict] = mapped_column("schema", JSON, default=dict, nullable=False)

    group: Mapped[Group | None] = relationship(lazy="selectin")


class Request(TimestampMixin, Base):
    __tablename__ = "requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    request_type_id: Mapped[str] = mapped_column(String(36), ForeignKey("request_types.id"), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=RequestStatus.PENDING, nullable=False)

    user: Mapped[User] = relationship()
    request_type: Mapped[RequestType] = relationship()
    approvals: Mapped[list["Approval"]] = relationship(
        back_populates="request", cascade="all, delete-orphan", order_by="Approval.created_at"
    )
    attachments: Mapped[list["Attachment"]] = relationship(
        back_populates="request", cascade="all, delete-orphan", order_by="Attachment.created_at"
    )


class Attachment(Base):
    __tablename__ = "attachments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_size: Mapped[str | None] = mapped_column(String(32), nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    request: Mapped[Request] = relationship(back_populates="attachments")
