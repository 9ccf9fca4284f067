"""
Tool Registry - single source of truth for tool definitions.

A registry is built once at startup from a list of ``ToolSpec`` entries and
is read-only afterwards, so it can be shared between sessions without
locking.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Iterator, Mapping, Optional

from pydantic import BaseModel, ConfigDict


class ToolInput(BaseModel):
    """Base class for tool argument models.

    Strict mode rejects wrong primitive types (``"2"`` for a number) instead
    of coercing them. Unknown fields are ignored.
    """

    model_config = ConfigDict(strict=True, populate_by_name=True, extra="ignore")


@dataclass(frozen=True)
class ToolSpec:
    """Metadata and implementation for a tool - defined once, used everywhere."""

    name: str
    description: str
    input_model: type[BaseModel]
    implementation: Callable[[Any], Awaitable[str]]

    @property
    def input_schema(self) -> dict:
        """JSON schema of the arguments, as disclosed to the model."""
        return self.input_model.model_json_schema(by_alias=True)


class ToolRegistry:
    """Immutable name -> ToolSpec mapping."""

    def __init__(self, specs: Iterable[ToolSpec]):
        tools: dict[str, ToolSpec] = {}
        for spec in specs:
            if spec.name in tools:
                raise ValueError(f"Duplicate tool name in registry: {spec.name}")
            tools[spec.name] = spec
        self._tools: Mapping[str, ToolSpec] = MappingProxyType(tools)

    def get(self, name: str) -> Optional[ToolSpec]:
        """Get a tool by name."""
        return self._tools.get(name)

    def all_tools(self) -> Mapping[str, ToolSpec]:
        """Read-only view of all registered tools."""
        return self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def get_tools_summary(self) -> str:
        """Get formatted summary of all tools for prompts and the CLI."""
        lines = []
        for name, tool in self._tools.items():
            lines.append(f"- {name}: {tool.description}")
        return "\n".join(lines)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
