import secrets

from fastapi import APIRouter, Depends, Query
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.config import settings
from herdit.core.database import get_db
from herdit.core.errors import Unauthorized
from herdit.core.security import security_scheme
from herdit.schemas.file import CleanupResponse
from herdit.services import file_service

router = APIRouter(prefix="/cron", tags=["system"])


def require_cron_secret(credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme)) -> None:
    # An unset secret disables the endpoint.
    if not settings.cron_secret or credentials is None:
        raise Unauthorized()
    if not secrets.compare_digest(credentials.credentials, settings.cron_secret):
        raise Unauthorized()


@router.get("/cleanup", response_model=CleanupResponse)
async def cleanup(
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _=Depends(require_cron_secret),
):
    counts = await file_service.run_cleanup(db, file_service.get_blob_store(), force=force)
    return CleanupResponse(
        success=True,
        message=f"Cleanup completed: {counts['deleted_files']} files and {counts['deleted_tokens']} tokens deleted",
        details={**counts, "force_clean": force},
    )
