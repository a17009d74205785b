from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

from basket.api.middleware.error_handler import (
    handle_generic_error,
    handle_grouping_error,
    handle_integrity_error,
    handle_validation_error,
)
from basket.api.middleware.logging import RequestLoggingMiddleware, configure_logging
from basket.api.v1 import router as v1_router
from basket.api.v1.health import router as health_router
from basket.config import settings
from basket.core.exceptions import GroupingError
from basket.db.session import async_engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging(settings.log_level)
    yield
    # Shutdown
    await async_engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Basket Product Grouping API",
        description="Product identity resolution for grocery receipts",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers (order matters - most specific first)
    app.add_exception_handler(GroupingError, handle_grouping_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(Exception, handle_generic_error)

    # Register routers
    app.include_router(health_router)
    app.include_router(v1_router)

    return app


app = create_app()
