from herdit.models.base import Base, TimestampMixin
from herdit.models.user import Group, Role, User, user_groups, user_roles
from herdit.models.request import Attachment, Request, RequestKind, RequestStatus, RequestType
from herdit.models.approval import Approval
from herdit.models.audit import AuditLog
from herdit.models.file_token import FileToken

__all__ = [
    "Base", "TimestampMixin",
    "User", "Role", "Group", "user_roles", "user_groups",
    "RequestType", "Request", "Attachment", "RequestKind", "RequestStatus",
    "Approval", "AuditLog", "FileToken",
]
