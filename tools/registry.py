from langchain_core.tools import BaseTool

from tools.brave_search import brave_news_search, brave_web_search
from tools.language import determine_search_language
from tools.schemas import TOOL_OUTPUT_SCHEMAS
from tools.web_page import fetch_web_page
from tools.wikipedia import wikipedia_lookup


def get_search_tools() -> list[BaseTool]:
    """
    The fixed tool set bound to the searcher.

    Every tool must have a declared output schema; registering one without
    is a programming error.
    """
    search_tools: list[BaseTool] = [
        determine_search_language,
        brave_web_search,
        brave_news_search,
        fetch_web_page,
        wikipedia_lookup,
    ]
    for search_tool in search_tools:
        if search_tool.name not in TOOL_OUTPUT_SCHEMAS:
            raise RuntimeError(
                f"Tool {search_tool.name!r} has no declared output schema."
            )
    return search_tools


__all__ = ["get_search_tools"]
