import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from compliance_docs.config import settings
from compliance_docs.database import init_db
from compliance_docs.errors import DocumentServiceError
from compliance_docs.logging_config import configure_logging
from compliance_docs.routers import documents
from compliance_docs.services.cache import RedisCacheInvalidator
from compliance_docs.services.queue_publisher import AioPikaBroker
from compliance_docs.utils.filesystem import ensure_storage_dirs

logger = logging.getLogger("compliance_docs")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    ensure_storage_dirs()
    init_db()
    app.state.broker = AioPikaBroker(settings.rabbitmq_url)
    app.state.cache = RedisCacheInvalidator(settings.redis_url) if settings.redis_url else None
    logger.info("Document service started; blobs under %s", settings.documents_dir)
    yield
    await app.state.broker.close()
    if app.state.cache is not None:
        app.state.cache.close()


app = FastAPI(
    title="Compliance Document Service",
    description="Upload, processing and verification of driver and vehicle compliance documents",
    version="0.1.0",
    lifespan=lifespan,
)


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, "data": None},
    )


@app.exception_handler(DocumentServiceError)
async def document_error_handler(request: Request, exc: DocumentServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return _envelope(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return _envelope(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _envelope(exc.status_code, str(exc.detail))


app.include_router(documents.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
