import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .errors import NetworkFailure, NotFound, PosError
from .logs import json_log
from .routers.catalog import router as catalog_router
from .routers.categories import router as categories_router
from .routers.orders import router as orders_router
from .routers.sales import router as sales_router
from .routers.settings import router as settings_router
from .routers.sync import router as sync_router
from .routers.uploads import router as uploads_router
from .services import PosServices

STARTED_AT_UTC = datetime.now(timezone.utc)


def _current_request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _dev_detail(content: dict, exc: Exception) -> dict:
    if settings.env in {"local", "dev"}:
        content["error"] = str(exc)
    return content


def _pos_error_status(exc: PosError) -> int:
    if isinstance(exc, NetworkFailure):
        return 502
    if isinstance(exc, NotFound):
        return 404
    # ValidationFailure and any other action-scoped failure.
    return 400


def _pos_error(req: Request, exc: PosError):
    status = _pos_error_status(exc)
    if isinstance(exc, NetworkFailure):
        # Upstream bodies can carry server internals; only dev sees them.
        content = _dev_detail({"detail": "shop server unavailable"}, exc)
        if exc.status:
            content["upstream_status"] = exc.status
    else:
        content = {"detail": str(exc)}
    json_log(
        "warning" if status >= 500 else "info",
        "http.request.rejected",
        exc=exc,
        request_id=_current_request_id(req),
        path=req.url.path,
        status_code=status,
    )
    return JSONResponse(status_code=status, content=content)


def _request_validation_error(req: Request, exc: RequestValidationError):
    errors = exc.errors()
    # Field locations only; submitted values may hold PINs or tokens.
    fields = sorted({".".join(str(p) for p in e.get("loc", ())[1:]) for e in errors})
    json_log("info", "http.request.invalid", request_id=_current_request_id(req), path=req.url.path, fields=fields)
    content = {"detail": "validation failed", "fields": fields}
    if settings.env in {"local", "dev"}:
        content["errors"] = jsonable_encoder(errors)
    return JSONResponse(status_code=422, content=content)


def _unhandled_exception(req: Request, exc: Exception):
    rid = _current_request_id(req)
    json_log("error", "http.request.unhandled", exc=exc, request_id=rid, method=req.method, path=req.url.path)
    return JSONResponse(status_code=500, content=_dev_detail({"detail": "internal error", "request_id": rid}, exc))


async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.monotonic()
    ctx = {
        "request_id": rid,
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else None,
    }
    try:
        response = await call_next(request)
    except Exception as exc:
        json_log("error", "http.request.error", exc=exc, duration_ms=_elapsed_ms(started), **ctx)
        raise

    response.headers["X-Request-Id"] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    # Health is polled by the cashier UI every few seconds.
    if ctx["path"] != "/api/health":
        json_log("info", "http.request", status_code=response.status_code, duration_ms=_elapsed_ms(started), **ctx)
    return response


def create_app(services: Optional[PosServices] = None, background: bool = True) -> FastAPI:
    """
    Build the local agent API around one PosServices instance.

    Tests pass their own services (fake remote, temp database) and skip the
    startup hooks by not entering the TestClient context.
    """
    app = FastAPI(title="Bookpos Agent API", version=settings.api_version)
    app.state.services = services if services is not None else PosServices()

    app.add_exception_handler(PosError, _pos_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(Exception, _unhandled_exception)
    app.middleware("http")(_request_logging)

    # The cashier UI is served from its own dev server during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(settings_router)
    app.include_router(catalog_router)
    app.include_router(categories_router)
    app.include_router(sales_router)
    app.include_router(sync_router)
    app.include_router(orders_router)
    app.include_router(uploads_router)

    @app.on_event("startup")
    def _startup():
        app.state.services.start(background=background)
        json_log("info", "startup.ready", env=settings.env, version=settings.api_version)

    @app.on_event("shutdown")
    def _shutdown():
        app.state.services.stop()

    @app.get("/api/health")
    def health():
        svc = app.state.services
        return {
            "status": "ok",
            "version": settings.api_version,
            "env": settings.env,
            "online": svc.sync.online,
            "started_at": STARTED_AT_UTC.isoformat(),
            "uptime_s": int((datetime.now(timezone.utc) - STARTED_AT_UTC).total_seconds()),
        }

    return app
