from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from herdit.api.router import api_router
from herdit.core.config import settings
from herdit.core.database import engine
from herdit.core.errors import register_exception_handlers
from herdit.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging(settings.log_level)
    async with engine.begin() as conn:
        from herdit.models.base import Base  # noqa: F811
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s started (env=%s)", settings.app_name, settings.env)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(api_router, prefix="/api")


@app.get("/health", tags=["system"])
async def health() -> dict[str, str]:
    return {"status": "ok"}
