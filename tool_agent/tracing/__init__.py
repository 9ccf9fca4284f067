"""
Langfuse tracing integration for the tool agent.

Provides observability for model calls, tool executions, and turn lifecycle.
"""

from .client import TracingClient, create_tracing_client
from .context import (
    TracingContext,
    SpanContext,
    GenerationContext,
)

__all__ = [
    "TracingClient",
    "create_tracing_client",
    "TracingContext",
    "SpanContext",
    "GenerationContext",
]
