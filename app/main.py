from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import bridge, health, payments, paymaster, wallets
from .api.errors import register_error_handlers
from .config import Settings, settings as default_settings
from .container import ServiceContainer, build_container
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the API.

    With no ``container`` one is built from ``settings`` at startup, which
    validates the configuration and fails fast when it is incomplete.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings.log_level)
        owned = None
        if getattr(app.state, "container", None) is None:
            owned = build_container(settings)
            app.state.container = owned
        try:
            yield
        finally:
            if owned is not None:
                await owned.aclose()

    app = FastAPI(
        title="Vyra Backend",
        description="Session-key payments, gas sponsorship, bridge and point-of-sale backend",
        version=health.SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(wallets.router)
    app.include_router(payments.router)
    app.include_router(bridge.router)
    app.include_router(paymaster.router)

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": health.SERVICE_NAME,
            "version": health.SERVICE_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower()
    )
