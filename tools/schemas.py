"""
Declared output schemas for the research tools.

Every tool is registered with the schema id of the payload it returns, so that
tool results can be interpreted by schema id rather than by sniffing their
shape. The mapping is static and has no runtime dependencies, which keeps it
usable from the pure classification code.
"""

import json
import logging
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError


logger = logging.getLogger(__name__)


class ToolOutputSchema(str, Enum):
    SEARCH_RESULTS = "search_results.v1"
    LANGUAGE_HINT = "language_hint.v1"
    PAGE_SUMMARY = "page_summary.v1"
    ENCYCLOPEDIA = "encyclopedia.v1"
    TEXT = "text"


TOOL_OUTPUT_SCHEMAS: dict[str, str] = {
    "brave_web_search": ToolOutputSchema.SEARCH_RESULTS.value,
    "brave_news_search": ToolOutputSchema.SEARCH_RESULTS.value,
    "determine_search_language": ToolOutputSchema.LANGUAGE_HINT.value,
    "fetch_web_page": ToolOutputSchema.PAGE_SUMMARY.value,
    "wikipedia_lookup": ToolOutputSchema.ENCYCLOPEDIA.value,
}


class SearchResult(BaseModel):
    title: str = Field(description="Title of the search result")
    link: str = Field(description="URL of the search result")
    snippet: str = Field(default="", description="Snippet or description")
    published: Optional[str] = Field(default=None, description="Age or publish date")


class LanguageHint(BaseModel):
    language: list[str] = Field(
        default_factory=lambda: ["English"],
        description="Languages most likely to produce useful search results",
    )
    intent: Optional[str] = Field(
        default=None, description="Core search keywords in the chosen language"
    )


class PageSummary(BaseModel):
    url: str
    title: str = ""
    summary: str = ""


class EncyclopediaEntry(BaseModel):
    title: str
    extract: str = ""
    link: Optional[str] = None


def output_schema_for(tool_name: Optional[str]) -> str:
    if not tool_name:
        return ToolOutputSchema.TEXT.value
    return TOOL_OUTPUT_SCHEMAS.get(tool_name, ToolOutputSchema.TEXT.value)


def decode_tool_result(content: str, schema_id: Optional[str]) -> Union[list, dict, str]:
    """
    Interpret a persisted tool result according to its declared schema.

    Search results decode to a list of `SearchResult` dicts, the other JSON
    schemas to a single dict. Unknown schemas, and payloads that do not match
    their declared schema (such as a tool error message), are returned as text.
    """
    if schema_id in (None, ToolOutputSchema.TEXT.value):
        return content

    try:
        data: Any = json.loads(content)
    except (TypeError, ValueError):
        logger.debug("Tool result declared as %s is not JSON; returning text.", schema_id)
        return content

    try:
        if schema_id == ToolOutputSchema.SEARCH_RESULTS.value:
            return [SearchResult.model_validate(item).model_dump() for item in data]
        if schema_id == ToolOutputSchema.LANGUAGE_HINT.value:
            return LanguageHint.model_validate(data).model_dump()
        if schema_id == ToolOutputSchema.PAGE_SUMMARY.value:
            return PageSummary.model_validate(data).model_dump()
        if schema_id == ToolOutputSchema.ENCYCLOPEDIA.value:
            return EncyclopediaEntry.model_validate(data).model_dump()
    except (TypeError, ValidationError):
        logger.debug("Tool result does not match declared schema %s.", schema_id)
        return content

    return content


__all__ = [
    "EncyclopediaEntry",
    "LanguageHint",
    "PageSummary",
    "SearchResult",
    "TOOL_OUTPUT_SCHEMAS",
    "ToolOutputSchema",
    "decode_tool_result",
    "output_schema_for",
]
