import logging
from typing import Optional
from urllib.parse import quote

import httpx
from langchain_core.tools import tool

from tools.http_client import describe_http_error, get_http_client
from tools.schemas import EncyclopediaEntry


logger = logging.getLogger(__name__)


SUMMARY_URL = "https://{language}.wikipedia.org/api/rest_v1/page/summary/{title}"
SEARCH_URL = "https://{language}.wikipedia.org/w/api.php"


def _fetch_summary(title: str, language: str) -> Optional[EncyclopediaEntry]:
    url = SUMMARY_URL.format(language=language, title=quote(title.replace(" ", "_")))
    response = get_http_client().get(url)
    if response.status_code == 404:
        return None
    response.raise_for_status()
    data = response.json()
    page_url = ((data.get("content_urls") or {}).get("desktop") or {}).get("page")
    return EncyclopediaEntry(
        title=data.get("title") or title,
        extract=data.get("extract") or "",
        link=page_url,
    )


def _search_title(query: str, language: str) -> Optional[str]:
    response = get_http_client().get(
        SEARCH_URL.format(language=language),
        params={
            "action": "opensearch",
            "search": query,
            "limit": 1,
            "namespace": 0,
            "format": "json",
        },
    )
    response.raise_for_status()
    data = response.json()
    # opensearch returns [query, [titles], [descriptions], [links]]
    if isinstance(data, list) and len(data) > 1 and data[1]:
        return data[1][0]
    return None


@tool
def wikipedia_lookup(query: str, language: str = "en") -> str:
    """Look up background knowledge on Wikipedia.

    Use for topics that are less time sensitive, where established facts matter
    more than recency. `language` is a Wikipedia language code such as "en".
    Returns JSON {"title", "extract", "link"}.
    """
    try:
        entry = _fetch_summary(query, language)
        if entry is None:
            title = _search_title(query, language)
            entry = _fetch_summary(title, language) if title else None
    except httpx.HTTPError as exc:
        logger.warning("Wikipedia lookup for %r failed: %s", query, describe_http_error(exc))
        return f"Error: Wikipedia lookup failed ({describe_http_error(exc)})."
    except ValueError:
        logger.warning("Wikipedia returned a non-JSON body for %r.", query)
        return "Error: Wikipedia returned an unreadable response."

    if entry is None:
        logger.info("No Wikipedia article found for %r.", query)
        return f"No Wikipedia article found for {query!r}."

    logger.info("Wikipedia lookup for %r resolved to %r.", query, entry.title)
    return entry.model_dump_json(exclude_none=True)


__all__ = ["wikipedia_lookup"]
