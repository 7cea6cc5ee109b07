"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.errors import DashboardError
from core.orchestrator import Orchestrator, RuntimeBundle
from web.connection_manager import ConnectionManager
from web.routes import router

logger = logging.getLogger("dash.api")


def create_app(
    bundle: RuntimeBundle | None = None,
    root: Path | None = None,
    manager: ConnectionManager | None = None,
) -> FastAPI:
    """Build the API around ``bundle`` (or a freshly wired one).

    A bundle created here is closed again on shutdown; a bundle passed in
    belongs to the caller.
    """
    manager = manager or ConnectionManager()
    owns_bundle = bundle is None
    if bundle is None:
        bundle = Orchestrator(root=root).build(broadcaster=manager)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        manager.set_loop(asyncio.get_running_loop())
        logger.info("Dashboard API ready")
        try:
            yield
        finally:
            manager.set_loop(None)
            if owns_bundle:
                bundle.close()

    app = FastAPI(title="Bot Dashboard Automation", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=bundle.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.bundle = bundle
    app.state.ws_manager = manager

    @app.exception_handler(DashboardError)
    async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request body", "details": str(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) or "Internal server error",
                "details": type(exc).__name__,
            },
        )

    app.include_router(router)
    return app
