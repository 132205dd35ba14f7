"""
Application factory.

Builds the FastAPI application: lifespan, middleware, error handlers and
route registration.
"""
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from revcycle import __version__
from revcycle.api.middleware.request_log import RequestLogMiddleware
from revcycle.config.database import init_db
from revcycle.config.settings import get_settings
from revcycle.utils.errors import (
    AppError,
    app_error_handler,
    general_exception_handler,
    validation_error_handler,
)
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)


def create_lifespan(initialize_database: bool = True) -> Callable:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting application...")
        if initialize_database:
            await init_db()
        logger.info("Application started successfully")
        yield
        logger.info("Shutting down application...")

    return lifespan


def setup_middleware(app: FastAPI) -> None:
    """
    Configure application middleware.

    Middleware runs in reverse order of registration, so CORS (registered
    last) sees the request first.
    """
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )


def setup_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)


def register_routes(app: FastAPI) -> None:
    from revcycle.api.routes import charges, claims, coding, denials, health, remits

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(coding.router, prefix="/api/v1", tags=["coding"])
    app.include_router(charges.router, prefix="/api/v1", tags=["charges"])
    app.include_router(claims.router, prefix="/api/v1", tags=["claims"])
    app.include_router(remits.router, prefix="/api/v1", tags=["remits"])
    app.include_router(denials.router, prefix="/api/v1", tags=["denials"])

    logger.info("Routes registered successfully")


def create_application(initialize_database: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests pass ``initialize_database=False`` and supply their own session
    through ``app.dependency_overrides``.
    """
    app = FastAPI(
        title="Revenue Cycle Engine",
        description="Encounter coding, charge capture, claim submission and remittance reconciliation",
        version=__version__,
        lifespan=create_lifespan(initialize_database),
    )

    setup_middleware(app)
    setup_error_handlers(app)
    register_routes(app)

    return app
