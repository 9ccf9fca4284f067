"""
SearXNG Web Search Tool

Provides web search capabilities via a SearXNG instance.
"""

import functools
import logging
from typing import Optional

import httpx
from pydantic import Field

from ..config import ToolConfig
from ..errors import ToolRuntimeFailure
from .http import http_get
from .registry import ToolInput, ToolSpec

logger = logging.getLogger(__name__)


class SearchInput(ToolInput):
    query: str = Field(min_length=1, description="search query")
    categories: Optional[str] = Field(
        default=None, description="optional category (general, images, news)"
    )
    num_results: int = Field(
        default=5, ge=1, le=20, description="max results to return (default 5)"
    )


async def search(
    query: str,
    endpoint: str,
    categories: Optional[str] = None,
    num_results: int = 5,
    timeout: float = 30.0,
) -> dict:
    """
    Search the web using SearXNG.

    Args:
        query: The search query
        endpoint: SearXNG search URL
        categories: Optional category filter (e.g., "general", "images", "news")
        num_results: Maximum number of results to return

    Returns:
        Dictionary with search results

    Raises:
        ToolRuntimeFailure: If the instance is unreachable or answers with an error
    """
    params = {"q": query, "format": "json"}
    if categories:
        params["categories"] = categories

    try:
        response = await http_get(endpoint, params=params, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as e:
        logger.error(f"Search failed: {e}")
        raise ToolRuntimeFailure(f"Search failed: {e}") from e

    results = []
    for result in data.get("results", [])[:num_results]:
        results.append({
            "title": result.get("title", ""),
            "url": result.get("url", ""),
            "content": result.get("content", ""),
            "engine": result.get("engine", ""),
        })

    return {
        "query": query,
        "results": results,
        "total": len(results),
    }


def format_results_for_llm(search_results: dict) -> str:
    """
    Format search results into a string suitable for LLM consumption.

    Args:
        search_results: Results from search()

    Returns:
        Formatted string of search results
    """
    if not search_results.get("results"):
        return "No results found."

    formatted = f"Search results for '{search_results['query']}':\n\n"
    for i, result in enumerate(search_results["results"], 1):
        formatted += f"{i}. {result['title']}\n"
        formatted += f"   URL: {result['url']}\n"
        if result["content"]:
            formatted += f"   {result['content'][:200]}...\n"
        formatted += "\n"

    return formatted


async def web_search(args: SearchInput, config: ToolConfig) -> str:
    results = await search(
        query=args.query,
        endpoint=config.searxng_endpoint,
        categories=args.categories,
        num_results=args.num_results,
        timeout=config.http_timeout,
    )
    return format_results_for_llm(results)


def create_search_tools(config: ToolConfig) -> list[ToolSpec]:
    return [
        ToolSpec(
            name="web_search",
            description="Search the web for current information",
            input_model=SearchInput,
            implementation=functools.partial(web_search, config=config),
        )
    ]
