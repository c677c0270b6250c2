"""
FastAPI application factory.

    app = create_app()                       # settings from the environment
    app = create_app(Container.build(...))   # explicit wiring (tests)

The container is stored on app.state and reached through the dependencies
in gatequeue.api.deps. The lifespan loads policies on start-up and stops
every queue and closes the stores on shutdown.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response

from gatequeue.api import routes_factory, routes_permission, routes_queue
from gatequeue.api.errors import install_error_handlers
from gatequeue.config import Settings, get_settings
from gatequeue.container import Container
from gatequeue.logging import configure_logging

logger = structlog.get_logger(__name__)


async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind a request id (X-Request-ID or a fresh one) to every log line of the request."""
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=rid, method=request.method, path=request.url.path
    )
    try:
        response = await call_next(request)
        response.headers.setdefault("x-request-id", rid)
        return response
    finally:
        structlog.contextvars.clear_contextvars()


def create_app(container: Container | None = None, settings: Settings | None = None) -> FastAPI:
    if container is not None:
        settings = container.settings
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await app.state.container.startup()
        try:
            yield
        finally:
            await app.state.container.shutdown()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.container = container or Container.build(settings)

    app.middleware("http")(request_context_middleware)
    install_error_handlers(app)
    app.include_router(routes_queue.router)
    app.include_router(routes_factory.router)
    app.include_router(routes_permission.router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, object]:
        return {"status": "ok", "store": await app.state.container.store.ping()}

    return app


def main() -> FastAPI:
    """Entry point for `uvicorn --factory gatequeue.api.app:main`."""
    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json)
    return create_app(settings=settings)
