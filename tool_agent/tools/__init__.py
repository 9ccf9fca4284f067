"""
Tool Agent Tools Package

Available tools:
- coingecko: cryptocurrency prices and market-cap ranking
- weather: OpenWeatherMap forecasts
- pdf_reader: PDF text extraction and keyword search
- utilities: addition, random numbers, current time
- math_solver: mathematical expression evaluation
- search: web search via SearXNG
"""

from typing import Optional

from ..config import ToolConfig
from .coingecko import create_coingecko_tools
from .executor import ToolExecutor, ToolResult
from .math_solver import create_math_tools
from .pdf_reader import create_pdf_tools
from .registry import ToolInput, ToolRegistry, ToolSpec
from .search import create_search_tools
from .utilities import create_utility_tools
from .weather import create_weather_tools


def build_default_registry(config: Optional[ToolConfig] = None) -> ToolRegistry:
    """Build the registry with every built-in tool, wired to ``config``."""
    config = config or ToolConfig()
    return ToolRegistry(
        [
            *create_coingecko_tools(config),
            *create_weather_tools(config),
            *create_pdf_tools(config),
            *create_utility_tools(),
            *create_math_tools(),
            *create_search_tools(config),
        ]
    )


__all__ = [
    "build_default_registry",
    "ToolExecutor",
    "ToolInput",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
]
