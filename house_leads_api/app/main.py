"""
Main entrypoint for the House Leads back-office API.

This module assembles the FastAPI application, sets up logging and
includes versioned routers.  The ``create_app`` function builds
and configures the app, which is then instantiated at module
import time as ``app``.  Run it with uvicorn, e.g.::

    uvicorn house_leads_api.app.main:app --reload

The application title and version are provided via ``Settings`` from
``core.config``.
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.logging_config import setup_logging
from .api.v1.router import router as v1_router
from .core.db import init_db


def create_app() -> FastAPI:
    """Create and configure a FastAPI application.

    Configures logging, mounts the versioned routers, wraps request
    validation errors in the usual ``{data, message}`` envelope and
    applies database migrations on startup.

    Returns
    -------
    FastAPI
        A configured FastAPI application instance.
    """
    # Initialise logging before anything else so that imports below can
    # safely log messages.
    setup_logging(settings.log_level, settings.log_file or None)

    app = FastAPI(title=settings.project_name, version=settings.api_version, debug=settings.debug)

    app.include_router(v1_router, prefix="/api/v1")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "data": None,
                "message": "Dữ liệu không hợp lệ",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    # Register startup event to initialise the database and apply migrations.
    @app.on_event("startup")
    async def startup_event() -> None:
        # Creates the database file if it does not exist and brings the
        # schema up to date.
        init_db()

    return app


# Create the application instance at import time so that tools such as
# uvicorn can discover it without calling create_app manually.
app = create_app()
