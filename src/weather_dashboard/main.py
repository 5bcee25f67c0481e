"""Application entry point."""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from weather_dashboard import __version__
from weather_dashboard.api.routes import api_router, auth_router, health_router, me_router
from weather_dashboard.config import get_settings
from weather_dashboard.middleware.logging import LoggingMiddleware, configure_logging


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    configure_logging(settings)

    app = FastAPI(
        title="Weather Dashboard API",
        description="City weather cards and saved cities for the weather dashboard",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(api_router)
    app.include_router(me_router)
    app.include_router(auth_router)
    app.include_router(health_router)

    # Mount Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())

    return app


# Create app instance for ASGI servers
app = create_app()


def run() -> None:
    """Run the application with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "weather_dashboard.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
