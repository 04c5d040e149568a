import time
import uuid
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import close_pool
from .errors import AppError
from .hub import STARTED_AT_UTC, get_hub, warm_cache
from .jsonlog import json_log
from .routers.admin import router as admin_router
from .routers.owner import router as owner_router
from .routers.sync import router as sync_router

app = FastAPI(title="Store Sync Coordinator", version=settings.api_version)


def _current_request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


# Every error leaves the service as {"error": "..."}.
@app.exception_handler(AppError)
def _app_error(req: Request, exc: AppError):
    if exc.status_code >= 500:
        json_log("error", "http.request.failed", request_id=_current_request_id(req), path=req.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
def _http_exception(_req: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
def _request_validation_error(req: Request, exc: RequestValidationError):
    if settings.env in {"local", "dev"}:
        json_log("info", "http.request.invalid", request_id=_current_request_id(req), path=req.url.path, errors=exc.errors())
    return JSONResponse(status_code=400, content={"error": "validation failed"})


@app.exception_handler(Exception)
def _unhandled_exception(req: Request, exc: Exception):
    json_log(
        "error",
        "http.request.unhandled",
        request_id=_current_request_id(req),
        method=req.method,
        path=req.url.path,
        error=str(exc),
    )
    return JSONResponse(status_code=500, content={"error": "internal error"})


# Correlation id + basic structured request logging.
@app.middleware("http")
async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.time()
    path = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else None

    try:
        response = await call_next(request)
    except Exception as exc:
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "error",
            "http.request.error",
            request_id=rid,
            method=method,
            path=path,
            client_ip=client_ip,
            duration_ms=dur_ms,
            error=str(exc),
        )
        raise

    response.headers["X-Request-Id"] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    if path != "/sync/health":
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "info",
            "http.request",
            request_id=rid,
            method=method,
            path=path,
            status_code=response.status_code,
            client_ip=client_ip,
            duration_ms=dur_ms,
        )
    return response


# Terminals and the owner dashboard call from arbitrary origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Owner-Password", "X-Request-Id"],
)
app.include_router(sync_router)
app.include_router(owner_router)
app.include_router(admin_router)


@app.on_event("startup")
def _startup():
    hub = get_hub()
    warm_cache(hub)
    json_log(
        "info",
        "startup.ready",
        env=settings.env,
        version=settings.api_version,
        durable="enabled" if hub.persistence.enabled else "disabled",
        master_store_id=settings.master_store_id,
        report_tz=settings.report_tz,
    )


@app.on_event("shutdown")
def _shutdown():
    get_hub().write_behind.shutdown()
    close_pool()


@app.get("/meta")
def meta():
    return {
        "service": "store-sync-coordinator",
        "version": settings.api_version,
        "env": settings.env,
        "uptime_seconds": int((datetime.now(timezone.utc) - STARTED_AT_UTC).total_seconds()),
        "started_at": STARTED_AT_UTC.isoformat(),
    }
