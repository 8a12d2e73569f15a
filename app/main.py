"""
Membership Gate - FastAPI application.

Run locally with ``python -m app.main``; in production behind uvicorn
workers (``uvicorn app.main:app``).
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api.dependencies import close_chain_gateway
from app.api.middleware import ForwardedProtoMiddleware, RequestContextMiddleware
from app.api.routes import router as content_router
from app.api.status_routes import router as status_router
from app.config import settings
from app.observability import get_logger, setup_logging, setup_tracing
from app.observability.tracing import instrument_fastapi

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "application_starting",
        version=settings.api_version,
        network_id=settings.network_id,
        lock_address=settings.contract_ref.address,
        cdn_domain=settings.cdn_domain,
        tracing_enabled=settings.tracing_enabled,
    )
    try:
        yield
    finally:
        await close_chain_gateway()
        logger.info("application_stopped")


def _describe_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ctx can carry exception instances that JSONResponse cannot encode
    described = []
    for error in exc.errors():
        entry = {key: error.get(key) for key in ("type", "loc", "msg")}
        if "ctx" in error:
            entry["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        described.append(entry)
    return described


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query parameters are a client error like any missing one."""
    errors = _describe_validation_errors(exc)
    logger.warning("request_validation_failed", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid parameters", "errors": errors},
    )


async def root() -> dict[str, str]:
    return {"service": settings.api_title, "version": settings.api_version, "status": "running"}


async def metrics_endpoint() -> PlainTextResponse:
    """Prometheus text exposition."""
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app() -> FastAPI:
    """Assemble routes, middleware and instrumentation."""
    setup_tracing()

    application = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )
    application.add_exception_handler(RequestValidationError, handle_validation_error)

    # Last added runs first: CORS answers preflights before anything is logged.
    application.add_middleware(RequestContextMiddleware)
    application.add_middleware(ForwardedProtoMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    application.include_router(content_router)
    application.include_router(status_router)
    application.add_api_route("/", root, methods=["GET"], include_in_schema=False)
    if settings.metrics_enabled:
        application.add_api_route(
            "/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False
        )

    instrument_fastapi(application)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
