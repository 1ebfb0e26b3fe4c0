from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.config import settings
from herdit.core.database import get_db
from herdit.core.rbac import Principal, get_current_principal
from herdit.schemas.file import FileTokenCreate, FileTokenResponse, UploadResponse
from herdit.schemas.request import AttachmentCreate
from herdit.services import file_service, request_service
from herdit.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/files", tags=["files"])


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    request_id: str | None = Form(None),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    data = await file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_upload_bytes} bytes",
        )

    if request_id:
        await request_service.get_attachable_request(db, principal, request_id)

    store = file_service.get_blob_store()
    stored = await store.store(data, file.filename, file.content_type)

    attachment_id = None
    if request_id:
        try:
            request = await request_service.add_attachments(db, principal, request_id, [
                AttachmentCreate(
                    file_name=stored.original_name,
                    file_url=stored.url,
                    file_size=str(stored.size),
                    file_type=stored.type,
                )
            ])
        except Exception:
            await store.delete(stored.file_name)
            raise
        attachment_id = next((a.id for a in request.attachments if a.file_url == stored.url), None)

    return UploadResponse(
        id=stored.file_name,
        url=stored.url,
        name=stored.original_name,
        size=stored.size,
        type=stored.type,
        attachment_id=attachment_id,
    )


@router.post("/token", response_model=FileTokenResponse)
async def create_download_token(
    body: FileTokenCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    file_id = await file_service.resolve_file_id(db, principal, body.file_id, body.file_name, body.request_id)
    await file_service.check_file_access(db, principal, file_id)
    file_token = await file_service.issue_download_token(
        db,
        file_id=file_id,
        file_name=body.file_name,
        file_type=body.file_type or file_service.content_type_for(body.file_name),
    )
    return FileTokenResponse(
        token=file_token.token,
        expires=file_token.expires,
        download_url=file_service.download_url_for(file_token.token),
    )


@router.get("/download")
async def download_file(
    token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    file_token = await file_service.resolve_token(db, token)
    store = file_service.get_blob_store()
    path = store.find(file_token.file_id)
    if path is None:
        logger.warning("[FILES] token %s points at missing file %s", token, file_token.file_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return FileResponse(
        path,
        media_type=file_service.content_type_for(file_token.file_name),
        filename=file_token.file_name,
    )
