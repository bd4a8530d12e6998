from typing import Optional

import httpx


USER_AGENT = "ClarityNewsResearch/0.1"

_http_client: Optional[httpx.Client] = None


def get_http_client() -> httpx.Client:
    """Shared client for the provider calls made by the research tools."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.Client(
            timeout=httpx.Timeout(30.0),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
    return _http_client


def describe_http_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return type(exc).__name__


__all__ = ["USER_AGENT", "describe_http_error", "get_http_client"]
