# geojson_api/main.py

import json
import logging
import time
from contextlib import asynccontextmanager
from email.utils import format_datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings
from .errors import (
    GeoJSONAPIError,
    InputError,
    InternalError,
    NotFoundError,
    PayloadTooLargeError,
    StorageError,
    ValidationError,
)
from .logging_setup import configure_logging, log_step
from .schemas import HealthResponse, UploadResponse, validate_document
from .storage import DocumentStore, FileStore

logger = logging.getLogger(__name__)

GEOJSON_MEDIA_TYPE = "application/geo+json"
ACCEPTED_MEDIA_TYPES = {GEOJSON_MEDIA_TYPE, "application/json"}
ACCEPTED_SUFFIXES = (".geojson", ".json")
UPLOAD_FIELD = "file"
INTAKE_ERROR = f"Send as multipart field `{UPLOAD_FIELD}` OR application/json"
# Room for multipart boundaries and part headers around a file at the size limit
MULTIPART_OVERHEAD = 64 * 1024

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def _media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def _limit_body(request: Request, max_bytes: int) -> Request:
    """Return a view of the request that fails as soon as its body grows past max_bytes."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        log_step("UPLOAD_REJECTED", logging.WARNING, reason="too_large", declaredBytes=int(declared), limit=max_bytes)
        raise PayloadTooLargeError(f"Upload exceeds {max_bytes} bytes")

    receive = request.receive
    received = 0

    async def limited_receive():
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > max_bytes:
                log_step("UPLOAD_REJECTED", logging.WARNING, reason="too_large", receivedBytes=received, limit=max_bytes)
                raise PayloadTooLargeError(f"Upload exceeds {max_bytes} bytes")
        return message

    return Request(request.scope, limited_receive)


async def _read_file_part(request: Request, max_bytes: int) -> bytes:
    async with request.form(max_files=1, max_fields=16) as form:
        part = form.get(UPLOAD_FIELD)
        if not isinstance(part, UploadFile):
            log_step("UPLOAD_REJECTED", logging.WARNING, reason="missing_file_field")
            raise InputError(INTAKE_ERROR)

        filename = part.filename or ""
        mimetype = _media_type(part.content_type)
        log_step("UPLOAD_RECEIVED_FILE", originalName=filename, mimetype=mimetype, size=part.size)

        # Checked before the content is decoded
        if mimetype not in ACCEPTED_MEDIA_TYPES and not filename.lower().endswith(ACCEPTED_SUFFIXES):
            log_step("UPLOAD_REJECTED", logging.WARNING, reason="file_type", originalName=filename, mimetype=mimetype)
            raise InputError("Unsupported file type")

        if part.size is not None and part.size > max_bytes:
            log_step("UPLOAD_REJECTED", logging.WARNING, reason="too_large", size=part.size, limit=max_bytes)
            raise PayloadTooLargeError(f"Upload exceeds {max_bytes} bytes")

        return await part.read()


async def _read_json_body(request: Request) -> bytes:
    raw = await request.body()
    log_step("UPLOAD_RECEIVED_JSON", bytes=len(raw))
    return raw


def _reject_constant(name: str):
    raise ValueError(f"Invalid JSON constant: {name}")


def decode_json(raw: bytes) -> Any:
    """Strict JSON decode: NaN and Infinity are not JSON."""
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        log_step("UPLOAD_PARSE_ERROR", logging.WARNING, bytes=len(raw), message=str(e))
        raise InputError("Invalid JSON") from None


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(ok=True)


@router.get("/api/geojson/{identifier}", name="get_geojson")
def get_geojson(
    identifier: str,
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_store),
):
    try:
        record = store.stream(identifier)
    except NotFoundError:
        log_step("PERSISTED_GET_MISS", id=identifier[:64])
        raise
    except StorageError as e:
        log_step("PERSISTED_GET_ERROR", logging.ERROR, id=identifier[:64], message=e.message)
        raise
    except GeoJSONAPIError:
        raise
    except Exception as e:
        logger.exception("Unexpected retrieval failure")
        log_step("PERSISTED_GET_FATAL", logging.ERROR, id=identifier[:64], message=type(e).__name__)
        raise InternalError() from e

    log_step("PERSISTED_GET", id=record.identifier, bytes=record.size)
    return StreamingResponse(
        record.chunks,
        media_type=GEOJSON_MEDIA_TYPE,
        headers={
            "Content-Length": str(record.size),
            "Cache-Control": f"public, max-age={settings.CACHE_MAX_AGE}",
            "Last-Modified": format_datetime(record.modified, usegmt=True),
        },
    )


@router.post("/api/geojson", status_code=201, response_model=UploadResponse)
async def upload_geojson(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_store),
):
    try:
        media_type = _media_type(request.headers.get("content-type"))
        if media_type == "multipart/form-data":
            limited = _limit_body(request, settings.MAX_UPLOAD_BYTES + MULTIPART_OVERHEAD)
            raw = await _read_file_part(limited, settings.MAX_UPLOAD_BYTES)
        elif media_type in ACCEPTED_MEDIA_TYPES:
            raw = await _read_json_body(_limit_body(request, settings.MAX_UPLOAD_BYTES))
        else:
            log_step("UPLOAD_REJECTED", logging.WARNING, reason="content_type", contentType=media_type)
            raise InputError(INTAKE_ERROR)

        parsed = decode_json(raw)
        try:
            document = validate_document(parsed)
        except ValidationError as e:
            log_step("UPLOAD_VALIDATION_ERROR", logging.WARNING, issues=e.details)
            raise
        log_step("UPLOAD_VALIDATED", type=document.type, features=document.feature_count)

        # The decoded value is stored, not the model, so extra members survive
        try:
            stored = await run_in_threadpool(store.put, parsed)
        except StorageError as e:
            log_step("UPLOAD_STORAGE_ERROR", logging.ERROR, message=e.message)
            raise
        log_step("UPLOAD_SAVED", id=stored.identifier, bytes=stored.size)
    except (GeoJSONAPIError, StarletteHTTPException):
        raise
    except Exception as e:
        logger.exception("Unexpected upload failure")
        log_step("UPLOAD_FATAL", logging.ERROR, message=type(e).__name__)
        raise InternalError() from e

    url = str(request.app.url_path_for("get_geojson", identifier=stored.identifier))
    log_step("UPLOAD_RESPOND", id=stored.identifier, url=url)
    return UploadResponse(id=stored.identifier, url=url, bytes=stored.size)


async def handle_api_error(request: Request, exc: GeoJSONAPIError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def access_log(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %s %s - %.1f ms",
        request.method,
        request.url.path,
        response.status_code,
        response.headers.get("content-length", "-"),
        elapsed_ms,
    )
    return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    log_step("SERVER_START", port=settings.PORT, uploadDir=str(settings.STORAGE_DIR), env=settings.APP_ENV)
    yield


def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> FastAPI:
    """Build the application from one settings object; nothing is read from module globals."""
    settings = settings or Settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="GeoJSON Upload API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store or FileStore(settings.STORAGE_DIR)

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.middleware("http")(access_log)

    app.add_exception_handler(GeoJSONAPIError, handle_api_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)

    app.include_router(router)
    return app
