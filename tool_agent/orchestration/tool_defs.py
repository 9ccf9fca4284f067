"""
Tool definitions for the orchestration loop.

Converts ToolRegistry entries into OpenAI function-calling definitions that
are passed to the chat completions ``tools`` parameter.
"""

import logging
from typing import Optional

from ..tools.registry import ToolRegistry, ToolSpec

logger = logging.getLogger(__name__)


def _clean_schema(schema: dict) -> dict:
    """Drop pydantic's cosmetic ``title`` keys; they only add prompt tokens."""
    cleaned: dict = {}
    for key, value in schema.items():
        if key == "title" and isinstance(value, str):
            continue
        if isinstance(value, dict):
            if key == "properties":
                value = {name: _clean_schema(prop) for name, prop in value.items()}
            else:
                value = _clean_schema(value)
        elif isinstance(value, list):
            value = [_clean_schema(v) if isinstance(v, dict) else v for v in value]
        cleaned[key] = value
    return cleaned


def build_tool_definition(spec: ToolSpec) -> dict:
    """Build one OpenAI-format tool definition."""
    parameters = _clean_schema(spec.input_schema)
    parameters.setdefault("type", "object")
    parameters.setdefault("properties", {})
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": parameters,
        },
    }


def build_tool_definitions(
    registry: ToolRegistry,
    exclude_tools: Optional[set[str]] = None,
) -> list[dict]:
    """
    Build OpenAI function-calling tool definitions from the registry.

    Args:
        registry: Tools to disclose to the model.
        exclude_tools: Set of tool names to leave out.

    Returns:
        List of OpenAI-format tool definitions, in registry order.
    """
    exclude = exclude_tools or set()
    tools: list[dict] = []
    for spec in registry:
        if spec.name in exclude:
            logger.debug("Excluding tool '%s'", spec.name)
            continue
        tools.append(build_tool_definition(spec))
    return tools
