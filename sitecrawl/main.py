"""
Site Crawl Service - FastAPI entry point.

Inline crawls: POST /api/v1/crawls
Queued crawls: POST /api/v1/crawls/async (Celery, crawl_queue)
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from sitecrawl.api.v1.routes import crawls, health
from sitecrawl.core.config import get_settings
from sitecrawl.core.logging import configure_logging

logger = structlog.get_logger(__name__)
settings = get_settings()

REQUEST_ID_HEADER = "x-request-id"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    configure_logging()
    logger.info(
        "Starting Site Crawl Service",
        version=settings.APP_VERSION,
        env=settings.ENV,
        max_pages=settings.CRAWLER_MAX_PAGES,
        max_concurrency=settings.CRAWLER_MAX_CONCURRENCY,
    )
    yield
    logger.info("Site Crawl Service stopped")


async def bind_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request (including the crawl it runs) with its request id."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    with structlog.contextvars.bound_contextvars(request_id=request_id):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def create_application() -> FastAPI:
    production = settings.ENV == "production"
    app = FastAPI(
        title="Site Crawl API",
        description="Deterministic site crawl and site-wide evidence aggregation.",
        version=settings.APP_VERSION,
        docs_url=None if production else "/docs",
        redoc_url=None if production else "/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    # Aggregated evidence for 15 pages is well past the threshold
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.middleware("http")(bind_request_id)

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(crawls.router, prefix="/api/v1/crawls", tags=["Crawls"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request.headers.get(REQUEST_ID_HEADER)},
        )

    return app


app = create_application()
