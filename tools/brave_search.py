import json
import logging
from typing import Any, Callable

import httpx
from langchain_core.tools import tool

from config import get_brave_api_key
from tools.http_client import describe_http_error, get_http_client
from tools.schemas import SearchResult


logger = logging.getLogger(__name__)


BRAVE_WEB_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_NEWS_SEARCH_URL = "https://api.search.brave.com/res/v1/news/search"

MAX_RESULTS = 20


def _parse_results(items: Any) -> list[SearchResult]:
    results: list[SearchResult] = []
    if not isinstance(items, list):
        return results
    for item in items:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        results.append(
            SearchResult(
                title=item.get("title") or item["url"],
                link=item["url"],
                snippet=item.get("description") or "",
                published=item.get("age"),
            )
        )
    return results


def _run_brave_search(
    url: str,
    select: Callable[[dict], Any],
    query: str,
    search_lang: str,
    country: str,
    count: int,
) -> str:
    params = {
        "q": query,
        "search_lang": search_lang,
        "country": country,
        "count": max(1, min(count, MAX_RESULTS)),
    }
    headers = {
        "Accept": "application/json",
        "X-Subscription-Token": get_brave_api_key(),
    }
    try:
        response = get_http_client().get(url, params=params, headers=headers)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as exc:
        logger.warning("Brave search for %r failed: %s", query, describe_http_error(exc))
        return f"Error: search failed ({describe_http_error(exc)}). Try a different query."
    except ValueError:
        logger.warning("Brave search for %r returned a non-JSON body.", query)
        return "Error: search provider returned an unreadable response."

    if not isinstance(data, dict):
        data = {}

    results = _parse_results(select(data))
    logger.info("Brave search %s for %r returned %d results.", url, query, len(results))
    return json.dumps(
        [result.model_dump(exclude_none=True) for result in results],
        ensure_ascii=False,
    )


@tool
def brave_web_search(
    query: str, search_lang: str = "en", country: str = "US", count: int = 10
) -> str:
    """Search the web with Brave Search. Returns a JSON list of {title, link, snippet}.

    Use for specific queries and general results. `search_lang` is an ISO 639-1
    language code and `country` a two-letter country code.
    """
    return _run_brave_search(
        BRAVE_WEB_SEARCH_URL,
        lambda data: (data.get("web") or {}).get("results"),
        query,
        search_lang,
        country,
        count,
    )


@tool
def brave_news_search(
    query: str, search_lang: str = "en", country: str = "US", count: int = 10
) -> str:
    """Search recent news articles with Brave Search. Returns a JSON list of {title, link, snippet}.

    Use for current events. `search_lang` is an ISO 639-1 language code and
    `country` a two-letter country code.
    """
    return _run_brave_search(
        BRAVE_NEWS_SEARCH_URL,
        lambda data: data.get("results"),
        query,
        search_lang,
        country,
        count,
    )


__all__ = ["brave_news_search", "brave_web_search"]
