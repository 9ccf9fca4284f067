"""Shared test doubles: a scripted model gateway and a small tool registry."""

import asyncio
from typing import Sequence, Union

from pydantic import Field

from tool_agent.messages import Message, ToolCall
from tool_agent.orchestration import (
    FinalAnswer,
    InMemorySessionStore,
    ModelGateway,
    ModelResponse,
    OrchestrationLoop,
    ToolRequest,
)
from tool_agent.tools import ToolExecutor, ToolInput, ToolRegistry, ToolSpec
from tool_agent.tools.utilities import create_utility_tools

SYSTEM_PROMPT = "You are a test assistant."


class ScriptedGateway(ModelGateway):
    """Gateway that replays a fixed script of responses or exceptions."""

    model_name = "scripted"

    def __init__(self, script: Sequence[Union[ModelResponse, Exception]]):
        self.script = list(script)
        self.histories: list[list[Message]] = []
        self.closed = False

    async def invoke(self, history, on_token=None) -> ModelResponse:
        self.histories.append(list(history))
        if not self.script:
            raise AssertionError("Gateway called more often than scripted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, FinalAnswer) and on_token is not None:
            on_token(item.text)
        return item

    async def close(self) -> None:
        self.closed = True


def tool_request(*calls: tuple[str, str, dict]) -> ToolRequest:
    """ToolRequest from (id, name, arguments) triples."""
    return ToolRequest(calls=tuple(ToolCall(id=i, name=n, arguments=a) for i, n, a in calls))


class DelayInput(ToolInput):
    label: str
    delay: float = Field(default=0.0, ge=0.0)


class TextInput(ToolInput):
    text: str


async def delayed_echo(args: DelayInput) -> str:
    await asyncio.sleep(args.delay)
    return args.label


async def explode(args: TextInput) -> str:
    raise RuntimeError(f"boom: {args.text}")


async def hang(args: TextInput) -> str:
    await asyncio.sleep(3600)
    return args.text


def build_test_registry() -> ToolRegistry:
    return ToolRegistry(
        [
            *create_utility_tools(),
            ToolSpec("delayed_echo", "Echo a label after a delay.", DelayInput, delayed_echo),
            ToolSpec("explode", "Always fails.", TextInput, explode),
            ToolSpec("hang", "Never finishes.", TextInput, hang),
        ]
    )


def build_loop(script, tool_timeout=None, **options):
    """Loop over a fresh in-memory store and a scripted gateway."""
    gateway = ScriptedGateway(script)
    loop = OrchestrationLoop(
        gateway=gateway,
        executor=ToolExecutor(build_test_registry(), timeout=tool_timeout),
        store=InMemorySessionStore(system_prompt=SYSTEM_PROMPT),
        **options,
    )
    return loop, gateway
