"""FastAPI application factory for the Wattly billing API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from wattly.config.schema import AppConfig
from wattly.db.repository import Repository
from wattly.errors import BillingError
from wattly.services import Services, build_services

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    repo: Repository,
    services: Services | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Authentication happens upstream; the caller identity arrives in the
    configured actor header and every operation authorizes it itself.
    """
    from wattly import __version__

    app = FastAPI(
        title="Wattly",
        description="Energy allocation and billing for local electricity communities",
        version=__version__,
    )

    # Store config, repo and components in app state for access in routes
    app.state.config = config
    app.state.repo = repo
    app.state.services = services or build_services(config, repo)

    @app.exception_handler(BillingError)
    async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    # Register routes
    from wattly.api.routes.energy import router as energy_router
    from wattly.api.routes.invoices import router as invoices_router
    from wattly.api.routes.platform import router as platform_router
    from wattly.api.routes.tariffs import router as tariffs_router

    app.include_router(energy_router, prefix="/api")
    app.include_router(tariffs_router, prefix="/api")
    app.include_router(invoices_router, prefix="/api")
    app.include_router(platform_router, prefix="/api")

    return app
