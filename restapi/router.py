"""Application configuration and router setup."""

import logging

import fastapi
from fastapi.middleware import cors
from fastapi.openapi.utils import get_openapi

from components.core import init_db
from components.core.config import get_settings
from restapi.endpoints import (
    health_check,
    payment_plans,
    proration,
    recurring_expenses,
    settings as settings_endpoints,
)


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)

    app = fastapi.FastAPI(
        title="Course Billing",
        description="Payment plans, proration and recurring expenses for course schools",
        version="1.0.0",
        debug=settings.DEBUG,
    )

    # Initialize database
    init_db.init_db(app)

    # Add CORS middleware
    app.add_middleware(
        cors.CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_check.router)
    app.include_router(settings_endpoints.router)
    app.include_router(payment_plans.router)
    app.include_router(proration.router)
    app.include_router(recurring_expenses.router)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title="Course Billing",
            version="1.0.0",
            description="Payment plans, proration and recurring expenses for course schools",
            routes=app.routes,
        )
        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app
