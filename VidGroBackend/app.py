import logging
import time
import uuid
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from VidGroBackend.logging_setup import setup_logging
from VidGroBackend.metrics import observe_request
from VidGroBackend.routes.backup_routes import router as backup_router
from VidGroBackend.routes.config_routes import router as config_router
from VidGroBackend.routes.health_routes import router as health_router
from shared.config import load_backend_config, validate_environment_integrity
from shared.exceptions import VidGroError

setup_logging()
logger = logging.getLogger("vidgro_backend")
_CFG = load_backend_config()

app = FastAPI(title="VidGro Backend", version=_CFG.app_version)

_cors_origins = (_CFG.cors_allow_origins or "*").strip()
origins = ["*"] if _cors_origins == "*" else [o.strip() for o in _cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(config_router)
app.include_router(backup_router)
app.include_router(health_router)


@app.on_event("startup")
def _startup() -> None:
    validate_environment_integrity(_CFG)
    logger.info(
        "startup",
        extra={
            "environment": _CFG.app_env,
            "app_version": _CFG.app_version,
            "supabase_admin_enabled": bool(_CFG.admin_supabase_url and _CFG.admin_supabase_key),
            "backup_bucket": _CFG.backup_bucket,
        },
    )


def _route_path(request: Request) -> str:
    # Route template keeps metric label cardinality bounded.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    request_id = (
        request.headers.get("x-request-id")
        or request.headers.get("X-Request-Id")
        or str(uuid.uuid4())
    )
    start = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        status_code = getattr(response, "status_code", 200) or 200
        return response
    except Exception:
        logger.exception(
            "http_exception",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
            },
        )
        raise
    finally:
        latency_ms = (time.perf_counter() - start) * 1000.0
        client_ip = getattr(getattr(request, "client", None), "host", None)
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "latency_ms": round(latency_ms, 2),
                "client_ip": client_ip,
            },
        )
        observe_request(
            method=request.method,
            path=_route_path(request),
            status_code=status_code,
            latency_ms=latency_ms,
        )


def _error_body(error: str, message: str) -> Dict[str, Any]:
    return {"success": False, "error": error, "message": message}


@app.exception_handler(VidGroError)
async def vidgro_error_handler(request: Request, exc: VidGroError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "exception_type": type(exc).__name__,
            "error": exc.message,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.error, exc.message))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "request_unhandled_exception",
        extra={"path": request.url.path, "exception_type": type(exc).__name__},
    )
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", "An unexpected error occurred. Please try again later."),
    )
