"""
FastAPI application factory for the Storefront backend.

This module creates the main FastAPI app with:
- CORS configuration for the admin frontend
- Storefront runtime container lifecycle management
- Resource routes and error translation
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .._version import __version__
from ..server import Storefront
from .errors import install_error_handlers
from .routes import routers
from .settings import ApiSettings


def create_app(
    storefront: Storefront | None = None,
    settings: ApiSettings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        storefront: Runtime container to serve; built from the environment
            at startup when omitted
        settings: HTTP settings; loaded from the environment when omitted
    """
    settings = settings or ApiSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage Storefront container lifecycle."""
        container = storefront or Storefront()
        await container.start()
        app.state.storefront = container
        app.state.settings = settings

        yield

        await container.stop()

    app = FastAPI(
        title="Storefront",
        description="Back office API for products, categories, staff users, customers and orders.",
        version=__version__,
        lifespan=lifespan,
        root_path=settings.root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)
    for router in routers:
        app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "storefront", "version": __version__}

    return app
