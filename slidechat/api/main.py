"""
FastAPI application for slidechat.

Exposes the chat orchestrator over HTTP: a streaming chat endpoint, the tool
catalogue and a health check.

Usage:
    # Development server with auto-reload
    uvicorn slidechat.api.main:app --reload --host 0.0.0.0 --port 8000

    # Production server
    uvicorn slidechat.api.main:app --host 0.0.0.0 --port 8000 --workers 4

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn slidechat.api.main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_config
from ..errors import ErrorCodes, mask_token
from ..models import AppConfig
from ..tools import LocalDiskStore, TodoStore, ToolDispatcher, build_registry
from ..tracing import init_tracing_client, shutdown_tracing
from .routes import chat, health, tools


def configure_logging(app_config: Optional[AppConfig] = None):
    """Configure logging based on the configured LOG_LEVEL."""
    app_config = app_config or get_config()
    log_level = getattr(logging, app_config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("slidechat").setLevel(log_level)


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    app_config: AppConfig = app.state.app_config
    logger.info("Starting slidechat API server")

    logger.info("=" * 60)
    logger.info("CHAT MODEL")
    logger.info(f"  Endpoint: {app_config.llm.endpoint or '(not configured)'}")
    logger.info(f"  API Key: {mask_token(app_config.llm.api_key)}")
    logger.info(f"  Model: {app_config.llm.model}")
    logger.info(f"  Temperature: {app_config.llm.temperature}")
    logger.info(f"  Max Iterations: {app_config.orchestrator.max_iterations}")
    logger.info(f"  Request Timeout: {app_config.orchestrator.request_timeout}s")

    logger.info("-" * 60)
    logger.info(f"TOOLS: {'ENABLED' if app_config.tools.enabled else 'DISABLED'}")
    for family in app.state.registry.families():
        logger.info(f"  [{family.name}] {', '.join(family.tool_names)}")
    logger.info(f"  Disk root: {app_config.tools.disk.root}")
    logger.info(f"  Image model: {app_config.tools.image_generate.model or '(not configured)'}")
    logger.info(f"  Browser Use: {app_config.tools.browser_use.base_url}")

    logger.info("-" * 60)
    logger.info("LANGFUSE OBSERVABILITY")
    tracing_client = init_tracing_client(app_config.langfuse)
    if tracing_client.enabled:
        logger.info("  Status: ENABLED")
        logger.info(f"  Host: {tracing_client.host}")
    else:
        logger.info("  Status: DISABLED")
        logger.info(f"  Reason: {tracing_client.reason}")

    logger.info("=" * 60)

    yield

    logger.info("Shutting down slidechat API server")
    shutdown_tracing()
    logger.info("Tracing client shutdown complete")


def create_app(
    app_config: Optional[AppConfig] = None,
    todo_store: Optional[TodoStore] = None,
    disk_store: Optional[LocalDiskStore] = None,
    image_client=None,
    browser_transport=None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The todo store, disk store and tool registry live for the whole process
    and are shared by every request through ``app.state``.

    Returns:
        Configured FastAPI application instance.
    """
    app_config = app_config or get_config()
    if todo_store is None:
        todo_store = TodoStore(max_sessions=app_config.tools.todo.max_sessions)
    if disk_store is None:
        disk_store = LocalDiskStore(app_config.tools.disk.root)
    registry = build_registry(
        app_config,
        todo_store,
        disk_store,
        image_client=image_client,
        browser_transport=browser_transport,
    )

    app = FastAPI(
        title="slidechat API",
        description=(
            "Chat assistant for slide generation. The model can plan with todos, "
            "read and write session files, generate images and browse the web."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.app_config = app_config
    app.state.todo_store = todo_store
    app.state.disk_store = disk_store
    app.state.registry = registry
    app.state.dispatcher = ToolDispatcher(registry)

    # CORS middleware - allow all origins for development
    # In production, restrict to specific origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(tools.router, tags=["Tools"])
    app.include_router(chat.router, tags=["Chat"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors before returning 400 response."""
        logger.warning(
            f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
        )
        # Log request body for debugging (truncated to avoid log spam)
        body = await request.body()
        logger.debug(f"Request body: {body.decode('utf-8', errors='replace')[:1000]}")
        return JSONResponse(
            status_code=400,
            content={
                "code": ErrorCodes.INVALID_REQUEST,
                "message": "Invalid request body",
                "details": str(exc.errors()),
            },
        )

    return app


# Create the application instance
app = create_app()


def run_server():
    """
    Run the server using uvicorn.

    This is the entry point for running the server programmatically.
    """
    import uvicorn

    app_config = get_config()
    uvicorn.run(
        "slidechat.api.main:app",
        host=app_config.server.host,
        port=app_config.server.port,
        reload=app_config.server.reload,
        workers=1 if app_config.server.reload else app_config.server.workers,
    )


if __name__ == "__main__":
    run_server()
