"""FastAPI entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from apps.backend.config import get_settings
from apps.backend.middleware.request_log import RequestLogMiddleware, new_trace_id
from apps.backend.routers import health, auth, activities
from apps.backend.utils.api_errors import AppError, UpstreamError, error_envelope

logger = logging.getLogger(__name__)


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", None) or new_trace_id()


@asynccontextmanager
async def lifespan(app: FastAPI):
    s = get_settings()
    logging.basicConfig(
        level=getattr(logging, s.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info("startup env=%s port=%s", s.app_env, s.port)
    yield


app = FastAPI(
    title="Personal Assistant",
    description="Activity aggregation and AI daily summaries",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().cors_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["System"])
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(activities.router, prefix="/api/activities", tags=["Activities"])


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    detail = None
    if isinstance(exc, UpstreamError) and not get_settings().is_production:
        detail = exc.detail
    if exc.status_code >= 500:
        logger.warning(
            "request_failed error=%s path=%s trace_id=%s",
            type(exc).__name__, request.url.path, _trace_id(request),
        )
    return JSONResponse(
        content=error_envelope(message=exc.message, detail=detail),
        status_code=exc.status_code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    fields = [".".join(str(p) for p in e.get("loc", ())[1:]) for e in errors]
    message = f"Invalid request: {', '.join(f for f in fields if f)}" if any(fields) else "Invalid request"
    return JSONResponse(content=error_envelope(message=message), status_code=400)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if not isinstance(detail, str):
        detail = str(detail) if detail else "Request failed"
    if exc.status_code == 404:
        detail = "Not found"
    return JSONResponse(content=error_envelope(message=detail), status_code=exc.status_code)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    trace_id = _trace_id(request)
    logger.exception("Unhandled exception trace_id=%s path=%s", trace_id, request.url.path)
    message = "Internal server error" if get_settings().is_production else str(exc)[:200]
    resp = JSONResponse(content=error_envelope(message=message, trace_id=trace_id), status_code=500)
    resp.headers["X-Trace-Id"] = trace_id
    return resp


def run() -> None:
    import uvicorn

    s = get_settings()
    uvicorn.run("apps.backend.main:app", host="0.0.0.0", port=s.port, reload=not s.is_production)
