"""Attachment blob storage and time-limited download tokens.

Files live in two places: permanent storage (outside the web root) and a
temporary uploads directory that mirrors recently stored files. A download
token is a capability: whoever holds it can fetch the file until it expires.
"""

import asyncio
import os
import shutil
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.config import settings
from herdit.core.errors import Forbidden, NotFound, ValidationError
from herdit.core.rbac import Principal
from herdit.models.file_token import FileToken
from herdit.models.request import Attachment
from herdit.services import request_service
from herdit.utils.logging import get_logger

logger = get_logger(__name__)

MIME_TYPES = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "txt": "text/plain",
    "csv": "text/csv",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(file_name: str) -> str:
    extension = Path(file_name).suffix.lower().lstrip(".")
    return MIME_TYPES.get(extension, DEFAULT_CONTENT_TYPE)


def download_url_for(token: str) -> str:
    return f"/api/v1/files/download?token={token}"


@dataclass
class StoredFile:
    id: str
    file_name: str
    original_name: str
    url: str
    size: int
    type: str
    path: Path


@dataclass
class TempCleanupResult:
    deleted: int = 0
    failed: int = 0


class LocalBlobStore:
    def __init__(self, storage_dir: str | Path, uploads_dir: str | Path):
        self.storage_dir = Path(storage_dir)
        self.uploads_dir = Path(uploads_dir)

    def ensure_dirs(self) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _safe_name(file_id: str) -> str | None:
        name = Path(file_id).name
        if not name or name != file_id or name in (".", ".."):
            return None
        return name

    async def store(self, data: bytes, original_name: str, content_type: str | None = None) -> StoredFile:
        self.ensure_dirs()
        file_id = str(uuid.uuid4())
        extension = Path(original_name).suffix.lower()
        file_name = f"{file_id}{extension}"
        permanent_path = self.storage_dir / file_name

        await asyncio.to_thread(permanent_path.write_bytes, data)
        await asyncio.to_thread(shutil.copyfile, permanent_path, self.uploads_dir / file_name)
        logger.info("[FILES] stored %s as %s (%d bytes)", original_name, file_name, len(data))

        return StoredFile(
            id=file_id,
            file_name=file_name,
            original_name=original_name,
            url=f"/uploads/{file_name}",
            size=len(data),
            type=content_type or content_type_for(original_name),
            path=permanent_path,
        )

    def find(self, file_id: str) -> Path | None:
        """Permanent storage first, then the temporary uploads directory."""
        name = self._safe_name(file_id)
        if name is None:
            return None
        for directory in (self.storage_dir, self.uploads_dir):
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return None

    async def read(self, file_id: str) -> bytes | None:
        path = self.find(file_id)
        if path is None:
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, file_id: str) -> bool:
        name = self._safe_name(file_id)
        if name is None:
            return False
        deleted = False
        for directory in (self.storage_dir, self.uploads_dir):
            candidate = directory / name
            if candidate.is_file():
                await asyncio.to_thread(candidate.unlink)
                deleted = True
        return deleted

    async def cleanup_temp(self, max_age: timedelta, force: bool = False) -> TempCleanupResult:
        """Remove stale files from the uploads directory. Permanent storage is never touched."""
        self.ensure_dirs()
        result = TempCleanupResult()
        cutoff = datetime.now(UTC).timestamp() - max_age.total_seconds()

        for entry in await asyncio.to_thread(lambda: list(os.scandir(self.uploads_dir))):
            try:
                if entry.is_dir():
                    continue
                if not force and entry.stat().st_mtime > cutoff:
                    continue
                await asyncio.to_thread(os.unlink, entry.path)
                result.deleted += 1
            except OSError:
                result.failed += 1
                logger.exception("[FILES] failed to delete temp file %s", entry.name)
        return result


def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore(settings.storage_dir, settings.uploads_dir)


# ── Download tokens ───────────────────────────────────────────────────


async def check_file_access(db: AsyncSession, principal: Principal, file_id: str) -> None:
    """A token may only point at a file that exists or is attached somewhere.

    A file referenced by attachments may only be shared by someone who can see
    one of their requests.
    """
    result = await db.execute(
        select(Attachment.request_id).where(
            or_(Attachment.file_url == file_id, Attachment.file_url.endswith(f"/{file_id}"))
        )
    )
    request_ids = set(result.scalars().all())
    if not request_ids:
        if get_blob_store().find(file_id) is None:
            raise NotFound("File not found")
        return
    for request_id in request_ids:
        request = await request_service.get_request(db, request_id)
        if request is not None and request_service.is_visible(principal, request):
            return
    raise Forbidden("You don't have access to this file")


async def issue_download_token(
    db: AsyncSession,
    file_id: str,
    file_name: str,
    file_type: str,
    now: datetime | None = None,
) -> FileToken:
    if get_blob_store().find(file_id) is None:
        # Still issued: the file may be referenced by URL only.
        logger.warning("[FILES] token requested for %s which is not in storage", file_id)

    now = now or datetime.now(UTC)
    file_token = FileToken(
        token=str(uuid.uuid4()),
        file_id=file_id,
        file_name=file_name,
        file_type=file_type,
        expires=now + timedelta(minutes=settings.file_token_ttl_minutes),
    )
    db.add(file_token)
    await db.flush()
    return file_token


async def resolve_token(db: AsyncSession, token: str, now: datetime | None = None) -> FileToken:
    now = now or datetime.now(UTC)
    result = await db.execute(select(FileToken).where(FileToken.token == token, FileToken.expires > now))
    file_token = result.scalar_one_or_none()
    if file_token is None:
        raise NotFound("Invalid or expired token")
    return file_token


async def purge_expired(db: AsyncSession, now: datetime | None = None) -> int:
    now = now or datetime.now(UTC)
    result = await db.execute(delete(FileToken).where(FileToken.expires < now))
    await db.flush()
    return result.rowcount or 0


async def run_cleanup(db: AsyncSession, store: LocalBlobStore, force: bool = False) -> dict[str, int]:
    """Purge expired tokens and stale temporary files. Each step reports what it managed."""
    counts = {"deleted_files": 0, "deleted_tokens": 0, "failed": 0}

    try:
        counts["deleted_tokens"] = await purge_expired(db)
    except SQLAlchemyError:
        logger.exception("[CLEANUP] failed to purge expired file tokens")
        await db.rollback()

    try:
        temp = await store.cleanup_temp(timedelta(hours=settings.temp_file_max_age_hours), force=force)
        counts["deleted_files"] = temp.deleted
        counts["failed"] = temp.failed
    except OSError:
        logger.exception("[CLEANUP] failed to sweep temporary uploads")

    logger.info("[CLEANUP] %s (force=%s)", counts, force)
    return counts


def file_id_from_url(url: str | None) -> str | None:
    """``/uploads/<uuid>.<ext>`` -> ``<uuid>.<ext>``."""
    if not url or "/uploads/" not in url:
        return None
    name = url.split("/uploads/", 1)[1].split("?", 1)[0]
    return name or None


async def resolve_file_id(
    db: AsyncSession,
    principal: Principal,
    file_id: str | None,
    file_name: str,
    request_id: str | None = None,
) -> str:
    """Pick the stored file a token should point at, preferring the request's matching attachment."""
    if request_id:
        request = await request_service.get_visible_request(db, principal, request_id)
        attachment = next((a for a in request.attachments if a.file_name == file_name), None)
        if attachment is not None:
            file_id = file_id_from_url(attachment.file_url) or file_id
    if not file_id:
        raise ValidationError("File ID is required")
    return file_id
