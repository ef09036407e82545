"""Main FastAPI application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolchat import __version__
from toolchat.api.endpoints import SESSION_ID_HEADER, router
from toolchat.api.handlers import register_exception_handlers
from toolchat.config import get_settings
from toolchat.dependencies import shutdown_services
from toolchat.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging on startup; drain background work on shutdown."""
    settings = get_settings()
    setup_logging(LogConfig(level=settings.log_level))
    logger.info(f"Starting {settings.app_name} {__version__} (store: {settings.store_backend})")

    yield

    await shutdown_services()
    logger.info("Shut down cleanly")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "A demo chat service that streams answers from a hosted LLM and lets the model "
            "call a calculator, a clock and a session statistics tool."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Chat", "description": "Submit conversation turns and stream the answer."},
            {"name": "Sessions", "description": "Create and read chat sessions."},
            {"name": "Health", "description": "Service health monitoring and status checks."},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_ID_HEADER],
    )

    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("toolchat.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
