"""FastAPI dependencies shared by the routers."""

import logging

from fastapi import Request

from ..config_loader import get_app_config
from ..orchestration import OrchestrationLoop

logger = logging.getLogger(__name__)


def get_orchestration_loop(request: Request) -> OrchestrationLoop:
    """
    Return the application's orchestration loop.

    The lifespan handler normally builds it at startup; it is built lazily
    here when the app is served without running the lifespan.
    """
    loop = getattr(request.app.state, "orchestration_loop", None)
    if loop is None:
        config = getattr(request.app.state, "config", None) or get_app_config()
        loop = OrchestrationLoop.from_config(
            config, tracing=getattr(request.app.state, "tracing", None)
        )
        request.app.state.orchestration_loop = loop
        logger.debug("Orchestration loop built on first request")
    return loop
