# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""FastAPI application factory for the platypus REST API."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from platypus.providers import check_dependency

check_dependency("fastapi", "pip install -e '.[api]'")

from fastapi import FastAPI, Request  # noqa: E402

from platypus import __version__  # noqa: E402
from platypus.api.routes import protected, router  # noqa: E402
from platypus.service import FleetController  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(controller: FleetController, manage_lifecycle: bool = False) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    controller:
        The fleet controller every route reads from.
    manage_lifecycle:
        Start the controller's periodic tasks on application startup and
        stop them on shutdown.  ``platypus serve`` passes ``True``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await controller.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await controller.stop()

    app = FastAPI(
        title="Platypus API",
        description="Energy-aware fleet control: metrics, eco-scores, plans and eco tags.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.controller = controller
    app.state.api_keys = list(controller.config.api.api_keys)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s %d %.1fms",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    app.include_router(router)
    app.include_router(protected)

    return app
