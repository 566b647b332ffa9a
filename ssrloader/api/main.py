"""
FastAPI app for the SSR dev server.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from ssrloader.__version__ import __version__
from ssrloader.api.error_handlers import install_error_handlers
from ssrloader.api.routers import health, ssr
from ssrloader.app_config import ServerConfig
from ssrloader.server import DevServer

log = logging.getLogger("ssrloader.api")


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    """Build the app; its lifespan owns one :class:`DevServer` session."""
    config = config or ServerConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        server = DevServer(config)
        await server.start()
        app.state.server = server
        try:
            yield
        finally:
            await server.close()
            app.state.server = None

    app = FastAPI(
        title="SSR Dev Server",
        description="Server-side rendering of on-demand transformed Python modules",
        version=__version__,
        docs_url="/__ssr/docs",
        redoc_url=None,
        openapi_url="/__ssr/openapi.json",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.server = None

    install_error_handlers(app)

    app.include_router(health.router, prefix="/__ssr", tags=["health"])
    app.include_router(ssr.router, prefix="/__ssr", tags=["ssr"])
    # catch-all: must come last
    app.include_router(ssr.render_router, tags=["render"])
    return app
