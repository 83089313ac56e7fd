import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import router as api_router
from app.core.config import settings
from app.core.http_hardening import install_http_hardening
from app.services.attachment_errors import AttachmentError

logger = logging.getLogger("app.http")

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)
install_http_hardening(app)

app.include_router(api_router, prefix="/api")


@app.exception_handler(AttachmentError)
async def attachment_error_handler(request: Request, exc: AttachmentError):
    logger.warning("Attachment request failed path=%s kind=%s detail=%s", request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "kind": exc.kind.value})


@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "buckets": [settings.ATTACHMENTS_BUCKET, settings.AVATARS_BUCKET],
    }
