import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.api.routes import attendance, calendar, conflicts, health, timetable
from app.core.config import get_settings
from app.core.exceptions import AppError, StoreUnavailableError
from app.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware, SecurityHeadersMiddleware

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, StoreUnavailableError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
        headers=headers,
    )


async def store_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable during %s %s: %s", request.method, request.url.path, exc.orig)
    return await app_error_handler(request, StoreUnavailableError())


app = FastAPI(title=settings.project_name)
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(OperationalError, store_unavailable_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(SecurityHeadersMiddleware, settings=settings)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(conflicts.router, prefix=f"{settings.api_prefix}/conflicts", tags=["conflicts"])
app.include_router(timetable.router, prefix=f"{settings.api_prefix}/timetable", tags=["timetable"])
app.include_router(attendance.router, prefix=f"{settings.api_prefix}/attendance", tags=["attendance"])
app.include_router(calendar.router, prefix=f"{settings.api_prefix}/calendar", tags=["calendar"])
