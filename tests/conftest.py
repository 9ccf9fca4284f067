"""
Pytest configuration and fixtures for tool agent tests.
"""

from typing import Optional

import pytest

from tool_agent.orchestration import InMemorySessionStore, OrchestrationLoop
from tool_agent.tools import ToolExecutor, ToolRegistry

from helpers import SYSTEM_PROMPT, ScriptedGateway, build_test_registry


@pytest.fixture
def registry() -> ToolRegistry:
    return build_test_registry()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore(system_prompt=SYSTEM_PROMPT)


@pytest.fixture
def make_loop(registry, store):
    """Factory: make_loop(script, **loop_options) -> (loop, gateway)."""

    def factory(script, tool_timeout: Optional[float] = None, **options):
        gateway = ScriptedGateway(script)
        loop = OrchestrationLoop(
            gateway=gateway,
            executor=ToolExecutor(registry, timeout=tool_timeout),
            store=store,
            **options,
        )
        return loop, gateway

    return factory
