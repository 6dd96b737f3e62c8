"""FastAPI application setup."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from .routes import create_control_router, create_observability_router


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan."""
    # Startup
    application: Application = app.state.application
    await application.start()
    yield
    # Shutdown
    await application.stop()


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    application = application or get_app()

    fastapi_app = FastAPI(
        title="Agent Economy API",
        description="Control surface for the buyer/seller agent economy",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.application = application

    # Enable CORS for a local log viewer
    origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    fastapi_app.include_router(create_control_router(application))
    fastapi_app.include_router(create_observability_router(application))

    return fastapi_app
