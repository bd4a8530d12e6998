import html
import logging
import re
from typing import Optional
from urllib.parse import urlparse

import httpx
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.tools import tool
from langchain_google_genai import ChatGoogleGenerativeAI

from config import SEARCHER_MODEL, get_gemini_api_key
from tools.http_client import describe_http_error, get_http_client
from tools.schemas import PageSummary
from utils.prompts import PAGE_SUMMARY_SYSTEM_PROMPT


logger = logging.getLogger(__name__)


MAX_PAGE_CHARS = 12000

_summary_model = None

# Attribute values may contain ">"
_ATTRS = r'''(?:[^>"']|"[^"]*"|'[^']*')*'''
_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
# Raw-text elements: their bodies are never markup
_RAW_TEXT_ELEMENTS = re.compile(
    rf"<(script|style|noscript)\b{_ATTRS}>.*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
# Innermost first, so nested skipped elements unwind one level per pass
_SKIPPED_ELEMENTS = re.compile(
    rf"<(nav|footer|header|aside|svg|form)\b{_ATTRS}>(?:(?!<\1\b).)*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
_TITLE = re.compile(rf"<title\b{_ATTRS}>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(rf"</?[A-Za-z!]{_ATTRS}>")
_BLOCK_BREAK = re.compile(rf"</?(p|div|br|li|h[1-6]|tr|section|article)\b{_ATTRS}>", re.IGNORECASE)
_BOILERPLATE = (
    "cookie policy",
    "accept all cookies",
    "privacy policy",
    "terms of service",
    "subscribe to our",
    "sign up for",
    "log in",
    "click here to",
)


def _get_summary_model() -> ChatGoogleGenerativeAI:
    global _summary_model
    if _summary_model is None:
        _summary_model = ChatGoogleGenerativeAI(
            model=SEARCHER_MODEL,
            api_key=get_gemini_api_key(),
            temperature=0.0,
        )
    return _summary_model


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_page_text(markup: str) -> tuple[str, str]:
    """Return (title, readable text) for an HTML document."""
    title_match = _TITLE.search(markup)
    title = html.unescape(title_match.group(1)).strip() if title_match else ""

    body = _RAW_TEXT_ELEMENTS.sub(" ", _COMMENT.sub(" ", markup))
    while True:
        stripped_body = _SKIPPED_ELEMENTS.sub(" ", body)
        if stripped_body == body:
            break
        body = stripped_body
    body = _BLOCK_BREAK.sub("\n", body)
    body = html.unescape(_TAG.sub(" ", body))

    lines: list[str] = []
    for line in body.split("\n"):
        stripped = re.sub(r"\s+", " ", line).strip()
        # Short fragments are menus and buttons
        if len(stripped) <= 20:
            continue
        if any(phrase in stripped.lower() for phrase in _BOILERPLATE):
            continue
        lines.append(stripped)

    text = "\n".join(lines)
    if len(text) > MAX_PAGE_CHARS:
        text = text[:MAX_PAGE_CHARS] + "... (content truncated)"
    return title, text


def _summarize(url: str, title: str, text: str) -> str:
    response = _get_summary_model().invoke(
        [
            SystemMessage(content=PAGE_SUMMARY_SYSTEM_PROMPT),
            HumanMessage(content=f"URL: {url}\nTitle: {title}\n\nPage text:\n{text}"),
        ]
    )
    if not isinstance(response, AIMessage):
        logger.error("Unexpected response type from page summary model: %s", type(response))
        raise RuntimeError("Unexpected response type from page summary model.")
    content = response.content
    if isinstance(content, list):
        content = "\n".join(
            block.get("text", "") for block in content if isinstance(block, dict)
        )
    return (content or "").strip()


@tool
def fetch_web_page(url: str) -> str:
    """Fetch a web page and summarize its main content.

    Use when a search result looks relevant but its snippet is incomplete.
    Returns JSON {"url", "title", "summary"}.
    """
    if not _is_valid_url(url):
        return "Error: only absolute http(s) URLs can be fetched."

    try:
        response = get_http_client().get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Fetching %s failed: %s", url, describe_http_error(exc))
        return f"Error: could not fetch page ({describe_http_error(exc)})."

    content_type: Optional[str] = response.headers.get("content-type")
    if content_type and "html" not in content_type and "text" not in content_type:
        return f"Error: unsupported content type {content_type}."

    title, text = extract_page_text(response.text)
    if not text:
        return PageSummary(url=url, title=title, summary="").model_dump_json()

    summary = _summarize(url, title, text)
    logger.info("Summarized %s (%d chars of text).", url, len(text))
    return PageSummary(url=url, title=title, summary=summary).model_dump_json()


__all__ = ["extract_page_text", "fetch_web_page"]
