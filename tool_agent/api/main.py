"""
FastAPI application for the tool agent.

Provides an OpenAI-compatible REST API plus session and approval
endpoints.

Usage:
    # Development server with auto-reload
    uvicorn tool_agent.api.main:app --reload --host 0.0.0.0 --port 8000

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn tool_agent.api.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Config
from ..config_loader import get_app_config
from ..errors import ApprovalStateError, StoreFailure
from ..orchestration import OrchestrationLoop
from ..tracing import create_tracing_client
from .routes import chat, health, sessions

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging at the given level name."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("tool_agent").setLevel(log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the orchestration loop at startup and release it at shutdown."""
    config: Config = app.state.config
    logger.info("Starting tool agent API server")

    logger.info("=" * 60)
    logger.info("MODEL")
    logger.info(f"  Base URL: {config.model.base_url}")
    logger.info(f"  Model: {config.model.model}")
    logger.info(f"  Temperature: {config.model.temperature}")
    logger.info(f"  Streaming: {config.model.streaming}")

    logger.info("-" * 60)
    logger.info("LOOP")
    logger.info(f"  Max iterations: {config.loop.max_iterations or 'unbounded'}")
    logger.info(f"  Require approval: {config.loop.require_approval}")
    logger.info(f"  Parallel tools: {config.loop.parallel_tools}")
    logger.info(f"  Session store: {config.store.backend}")

    logger.info("-" * 60)
    logger.info("LANGFUSE OBSERVABILITY")
    tracing = create_tracing_client(config.langfuse)
    app.state.tracing = tracing
    if tracing.enabled:
        logger.info("  Status: ENABLED")
    else:
        logger.info("  Status: DISABLED")
        if tracing.error:
            logger.info(f"  Reason: {tracing.error}")

    if getattr(app.state, "orchestration_loop", None) is None:
        app.state.orchestration_loop = OrchestrationLoop.from_config(config, tracing=tracing)
    loop: OrchestrationLoop = app.state.orchestration_loop

    logger.info("-" * 60)
    logger.info("REGISTERED TOOLS")
    for spec in loop.registry:
        logger.info(f"  - {spec.name}: {spec.description[:60]}...")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down tool agent API server")
    await loop.close()
    tracing.shutdown()


async def store_failure_handler(request: Request, exc: StoreFailure) -> JSONResponse:
    logger.error(f"Session store failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": {"message": str(exc), "type": "store_unavailable"}},
    )


async def approval_state_handler(request: Request, exc: ApprovalStateError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": {"message": str(exc), "type": "invalid_request_error"}},
    )


def create_app(config: Optional[Config] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Configuration to serve; read from CONFIG_PATH or the
            environment when omitted.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Tool Agent API",
        description=(
            "OpenAI-compatible REST API for a conversational agent that answers "
            "through tool calls. Point any OpenAI client at the /v1 endpoint."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config or get_app_config()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(chat.router, tags=["Chat"])
    app.include_router(sessions.router, tags=["Sessions"])

    app.add_exception_handler(StoreFailure, store_failure_handler)
    app.add_exception_handler(ApprovalStateError, approval_state_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors before returning 400 response."""
        logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"detail": exc.errors()})

    return app


app = create_app()


def run_server():
    """Run the server using uvicorn."""
    config = get_app_config()
    configure_logging(config.log_level)
    uvicorn.run(
        "tool_agent.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        workers=1 if config.server.reload else config.server.workers,
    )


if __name__ == "__main__":
    run_server()
