import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.errors import AttachmentError
from app.logging_config import configure_logging
from app.routers import attachments, bulk, drive_oauth, jobs, health
from app.models import record as record_models  # noqa: F401 - ensures models are registered
from app.models import attachment as attachment_models  # noqa: F401
from app.models import job as job_models  # noqa: F401
from app.models import integration as integration_models  # noqa: F401

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Starting attachments service (env=%s)", settings.APP_ENV)
    yield
    from app.services.bulk_service import get_bulk_import_service

    # Only shut the pool down if this process ever created it.
    if get_bulk_import_service.cache_info().currsize:
        get_bulk_import_service().shutdown(wait=False)


app = FastAPI(title="Receipt Attachments", version="1.0.0", lifespan=lifespan)


@app.exception_handler(AttachmentError)
async def attachment_error_handler(request: Request, exc: AttachmentError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# Include API routers
app.include_router(attachments.router, tags=["attachments"])
app.include_router(bulk.router, prefix="/attachments/bulk", tags=["bulk"])
app.include_router(drive_oauth.router, prefix="/drive/oauth", tags=["drive"])
app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
app.include_router(health.router, tags=["health"])
