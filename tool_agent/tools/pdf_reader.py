"""
PDF reader tool.

Extracts text from a local PDF file or a PDF fetched over HTTP(S), either
whole, for selected pages, or as keyword snippets with surrounding context.
The result is a JSON document so the model can tell text from search hits.
"""

import asyncio
import functools
import io
import json
import logging
import re
from pathlib import Path
from typing import Optional

from pydantic import Field
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ..config import ToolConfig
from ..errors import ToolRuntimeFailure
from .http import http_get
from .registry import ToolInput, ToolSpec

logger = logging.getLogger(__name__)

# Keeps a full-text answer within a reasonable prompt size.
MAX_TEXT_CHARS = 20000
MAX_RESULTS = 50


class PdfInput(ToolInput):
    source: str = Field(
        min_length=1, description="The local file path or the URL of the PDF document"
    )
    pages: Optional[list[int]] = Field(
        default=None, description="An optional array of page numbers (1-based) to extract text from"
    )
    query: Optional[str] = Field(
        default=None,
        description="An optional keyword or phrase to search for within the PDF content",
    )
    context_window: int = Field(
        default=200,
        alias="contextWindow",
        ge=0,
        description="The number of characters before and after a keyword match to include for context",
    )


async def load_pdf_bytes(source: str, timeout: float) -> bytes:
    """Read the PDF from a URL or from the local filesystem."""
    if source.startswith(("http://", "https://")):
        response = await http_get(
            source, headers={"Accept": "application/pdf"}, timeout=timeout
        )
        if not response.is_success:
            raise ToolRuntimeFailure(
                f"Failed to fetch PDF from URL: {response.status_code} {response.reason_phrase}"
            )
        return response.content

    path = Path(source).expanduser()
    if not path.is_file():
        raise ToolRuntimeFailure(f"PDF file not found: {source}")
    return await asyncio.to_thread(path.read_bytes)


def extract_pages(data: bytes, pages: Optional[list[int]] = None) -> tuple[list[tuple[int, str]], int]:
    """
    Extract text page by page.

    Args:
        data: Raw PDF bytes.
        pages: 1-based page numbers to keep, or None for all pages.

    Returns:
        ([(page_number, text), ...], total_pages)
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        total = len(reader.pages)
        wanted = sorted(set(pages)) if pages else range(1, total + 1)
        extracted = []
        for number in wanted:
            if number < 1 or number > total:
                continue
            extracted.append((number, reader.pages[number - 1].extract_text() or ""))
    except PdfReadError as e:
        raise ToolRuntimeFailure(
            f"The PDF could not be read. It may be corrupt or not a PDF: {e}"
        ) from e
    return extracted, total


def search_pages(
    page_texts: list[tuple[int, str]], pattern: re.Pattern, context_window: int
) -> list[dict]:
    """Find every match and return a highlighted snippet with its page number."""
    results = []
    for number, text in page_texts:
        for match in pattern.finditer(text):
            start = max(0, match.start() - context_window)
            end = min(len(text), match.end() + context_window)
            snippet = pattern.sub(lambda m: f"**{m.group(0)}**", text[start:end])
            results.append({"page": number, "snippet": snippet})
            if len(results) >= MAX_RESULTS:
                return results
    return results


async def read_pdf(args: PdfInput, config: ToolConfig) -> str:
    pattern = None
    if args.query:
        try:
            pattern = re.compile(args.query, re.IGNORECASE)
        except re.error as e:
            raise ToolRuntimeFailure(f"Invalid search query '{args.query}': {e}") from e

    data = await load_pdf_bytes(args.source, config.http_timeout)
    page_texts, total = await asyncio.to_thread(extract_pages, data, args.pages)
    logger.debug(f"Extracted {len(page_texts)} of {total} pages from {args.source}")

    if args.pages and not page_texts:
        raise ToolRuntimeFailure(
            f"None of the requested pages {args.pages} exist; the document has {total} pages."
        )

    if pattern is not None:
        results = search_pages(page_texts, pattern, args.context_window)
        if results:
            message = f"Found {len(results)} occurrences for \"{args.query}\"."
        else:
            message = f"No occurrences found for \"{args.query}\"."
        return json.dumps(
            {"success": True, "results": results, "totalPages": total, "message": message},
            ensure_ascii=False,
        )

    full_text = "\n".join(text for _, text in page_texts).strip()
    payload = {"success": True, "text": full_text[:MAX_TEXT_CHARS], "totalPages": total}
    if len(full_text) > MAX_TEXT_CHARS:
        payload["message"] = (
            f"Text truncated to {MAX_TEXT_CHARS} of {len(full_text)} characters. "
            "Request specific pages or use a query to narrow the result."
        )
    return json.dumps(payload, ensure_ascii=False)


def create_pdf_tools(config: ToolConfig) -> list[ToolSpec]:
    return [
        ToolSpec(
            name="read_pdf",
            description=(
                "Reads and extracts text from a PDF document specified by a URL or local "
                "file path. Can target specific pages or search for keywords within the "
                "document, returning relevant snippets with context."
            ),
            input_model=PdfInput,
            implementation=functools.partial(read_pdf, config=config),
        )
    ]
