from fastapi import APIRouter

from herdit.api.approvals import router as approvals_router
from herdit.api.auth import router as auth_router
from herdit.api.cron import router as cron_router
from herdit.api.dashboard import router as dashboard_router
from herdit.api.files import router as files_router
from herdit.api.requests import router as requests_router
from herdit.api.users import router as users_router

router = APIRouter(prefix="/v1")


@router.get("/status", tags=["system"])
async def status() -> dict[str, str]:
    return {"api": "up"}


router.include_router(auth_router)
router.include_router(dashboard_router)
router.include_router(requests_router)
router.include_router(approvals_router)
router.include_router(files_router)
router.include_router(users_router)
router.include_router(cron_router)

api_router = APIRouter()
api_router.include_router(router)
