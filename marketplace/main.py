"""
Main Application - FastAPI application setup.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.routing import Match

from marketplace.api.admin_routes import router as admin_router
from marketplace.api.routes import router
from marketplace.api.vendor_routes import router as vendor_router
from marketplace.config import settings
from marketplace.db.migration_runner import run_migrations
from marketplace.db.session import close_engines
from marketplace.observability import get_logger, metrics, setup_logging, setup_tracing
from marketplace.observability.tracing import instrument_fastapi
from marketplace.services.abacatepay_provider import close_payment_gateway, get_payment_gateway
from marketplace.services.notifications import get_notification_dispatcher
from marketplace.services.scheduler import build_scheduler

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Starts the payment poll and expiry sweep with the app and stops them,
    drains in-flight notifications and closes clients on shutdown.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
        background_jobs_enabled=settings.background_jobs_enabled,
    )

    if settings.auto_migrate:
        await asyncio.to_thread(run_migrations)

    dispatcher = get_notification_dispatcher()
    scheduler = None
    if settings.background_jobs_enabled:
        scheduler = build_scheduler(get_payment_gateway(), dispatcher)
        scheduler.start()

    yield

    logger.info("application_shutting_down")
    if scheduler is not None:
        await scheduler.stop()
    await dispatcher.drain()
    await dispatcher.close()
    await close_payment_gateway()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


# Add validation error logging handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log detailed validation errors for debugging."""
    # ctx may contain non-serializable objects
    sanitized_errors = []
    for error in exc.errors():
        sanitized = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    # Request bodies can carry customer contact data, so only locations are logged
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=[{"loc": e["loc"], "type": e["type"]} for e in sanitized_errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": sanitized_errors},
    )


# Setup tracing
setup_tracing()
instrument_fastapi(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_cors_origins,
    allow_credentials="*" not in settings.allowed_cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def route_template(request: Request) -> str:
    """Matched route path (/api/orders/{order_id}/status), so order ids never become labels."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log every request with its timing and record HTTP metrics per route."""
    start_time = time.perf_counter()
    request_id = request.headers.get("X-Request-ID", "unknown")

    endpoint = route_template(request)
    method = request.method
    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    try:
        response = await call_next(request)
        duration = time.perf_counter() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=duration,
            request_id=request_id,
        )
        return response
    except Exception as e:
        duration = time.perf_counter() - start_time
        metrics.record_http_request(endpoint, method, 500, duration)
        metrics.record_error(type(e).__name__, "http_request")

        logger.error(
            "request_failed",
            method=method,
            path=request.url.path,
            error=str(e),
            duration_seconds=duration,
            request_id=request_id,
            exc_info=True,
        )
        raise
    finally:
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


# Register routes
app.include_router(router)  # Storefront and payment webhooks
app.include_router(vendor_router)  # Reseller dashboard
app.include_router(admin_router)  # Platform admin


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "marketplace.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
