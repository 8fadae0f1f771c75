"""
FastAPI application entry point for the RiceHub backend.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request

from ricehub.config import get_settings
from ricehub.errors import install_error_handlers
from ricehub.routes import router

logger = logging.getLogger("ricehub.access")


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    if settings.disable_rate_limits:
        logger.warning("Rate limits disabled! Is it intentional?")
    if settings.maintenance:
        logger.warning("Maintenance mode toggled! Is it intentional?")

    app = FastAPI(title="RiceHub Backend (FastAPI)", version="0.1.0")
    install_error_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s %d %.1fms client=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
            request.client.host if request.client else "-",
        )
        return response

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
