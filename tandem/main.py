"""
Tandem — FastAPI Application Entry Point

Swipe matching and conversation engine.

- JSON logging through structlog, with ``request_id`` and the caller's
  ``user_id`` bound to every event logged while a request is in flight
- lifespan: warm the database pool on startup; drain in-flight requests and
  dispose the pool on shutdown
- ``EngineError`` subclasses raised by services become JSON error responses
- ``/health`` (liveness) and ``/health/deep`` (database readiness)

Run locally::

    uvicorn tandem.main:app --reload
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tandem.config import get_settings
from tandem.database import dispose_engine, get_engine, session_scope
from tandem.errors import EngineError

settings = get_settings()

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.LOG_LEVEL.upper())
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("tandem")

DRAIN_TIMEOUT_SECONDS = 15


class _InFlight:
    """Counts requests being served so shutdown can wait for them."""

    def __init__(self) -> None:
        self.count = 0

    def enter(self) -> None:
        self.count += 1

    def leave(self) -> None:
        self.count -= 1

    async def drain(self, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        while self.count > 0:
            if time.monotonic() >= deadline:
                logger.warning("drain_timeout_exceeded", remaining_requests=self.count)
                return
            await asyncio.sleep(0.25)


_in_flight = _InFlight()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
    )

    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("database_pool_initialised")
    logger.info("startup_complete")

    yield

    logger.info("shutdown_begin", in_flight=_in_flight.count)
    await _in_flight.drain(DRAIN_TIMEOUT_SECONDS)
    await dispose_engine()
    logger.info("shutdown_complete")


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 when a request runs past ``REQUEST_TIMEOUT_SECONDS``.

    The cancelled request's session is rolled back by ``get_db``, so a
    timed-out swipe or message leaves nothing behind.
    """

    def __init__(self, app, timeout_seconds: float) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("request_timeout", timeout=self.timeout_seconds)
            return JSONResponse(
                status_code=504,
                content={"detail": "Request timed out", "error": "timeout"},
            )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request context for logging, count in-flight requests and log
    one ``request_handled`` event per request."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=request.headers.get("x-user-id"),
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        _in_flight.enter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_error",
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        finally:
            _in_flight.leave()

        logger.info(
            "request_handled",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        response.headers["X-Request-Id"] = request_id
        return response


app = FastAPI(
    title="Tandem",
    description="Swipe matching and conversation engine",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# Last added runs first: CORS, then timeout, then request context.
app.add_middleware(RequestContextMiddleware)
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    logger.info("engine_error", error=exc.code, status=exc.status_code, detail=exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.code},
    )


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness: the service is only useful with a reachable database."""
    try:
        async with session_scope() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_db_failure", error=str(exc))
        return {"status": "degraded", "database": f"error: {exc}"}
    return {"status": "healthy", "database": "connected"}


from tandem.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
