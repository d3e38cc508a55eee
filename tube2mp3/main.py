from __future__ import annotations

import time
from typing import Optional

from fastapi import FastAPI, Request

from tube2mp3 import __version__
from tube2mp3.api import router as api_router
from tube2mp3.container import AppContext, build_context
from tube2mp3.logging_utils import get_logger


logger = get_logger(__name__)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the HTTP app.

    When no context is given it is built from the environment at startup,
    so configuration errors surface before the first request.
    """
    app = FastAPI(title="tube2mp3-gateway", version=__version__)
    app.state.context = context

    @app.middleware("http")
    async def log_http_requests(request: Request, call_next):
        """Centralized logging for all HTTP requests."""
        start = time.monotonic()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration = time.monotonic() - start
            client_host = request.client.host if request.client else "unknown"
            status_code = response.status_code if response is not None else 500
            logger.info(
                "HTTP %s %s from %s -> %d in %.3fs",
                request.method,
                request.url.path,
                client_host,
                status_code,
                duration,
            )

    app.include_router(api_router)

    @app.on_event("startup")
    async def on_startup() -> None:
        if app.state.context is None:
            app.state.context = build_context()
        ctx: AppContext = app.state.context
        logger.info(
            "Gateway ready (egress capacity=%d, signing=%s, work_dir=%s)",
            ctx.pool.capacity,
            ctx.config.signing_mode,
            ctx.config.work_dir,
        )

    return app


app = create_app()
