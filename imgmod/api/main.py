import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imgmod import __version__
from imgmod.config import load_config_from_env, validate_startup
from imgmod.context import ServiceContext

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the reclamation sweeper for the lifetime of the app."""
    context: ServiceContext = app.state.context
    if context.config.sweeper.enabled:
        context.scheduler.start()
    else:
        logger.info("Reclamation sweeper disabled by configuration")

    yield

    context.scheduler.stop()


def create_app(context: ServiceContext | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Without an explicit context the configuration is loaded from the
    environment (CONFIG_PATH and overrides) and validated fail-fast.
    """
    if context is None:
        config = load_config_from_env()
        validate_startup(config)
        context = ServiceContext.create(config)

    app = FastAPI(
        title="Image Moderation Service",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.context = context

    # --- Routers ---
    from imgmod.api.routes import cache, images

    app.include_router(images.router, tags=["Images"])
    app.include_router(cache.router, prefix="/cache", tags=["Cache"])

    cors = context.config.cors
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.allowed_origins,
        allow_methods=cors.allowed_methods,
        allow_headers=["*"],
    )

    @app.get("/")
    def index() -> dict[str, Any]:
        return {
            "service": "image-moderation",
            "version": __version__,
            "description": "Upload, moderate and serve resized image renditions.",
        }

    @app.get("/health")
    def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "api",
            "sweeper_running": context.scheduler.is_running,
        }

    return app


def main() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run(
        "imgmod.api.main:create_app",
        factory=True,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
