import logging
import os

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


load_dotenv()


# Model names
SUPERVISOR_MODEL = os.getenv("CLARITY_SUPERVISOR_MODEL", "gemini-2.5-flash")
SEARCHER_MODEL = os.getenv("CLARITY_SEARCHER_MODEL", "gemini-2.0-flash")

# Agent loop limits
AGENT_RECURSION_LIMIT = int(os.getenv("CLARITY_AGENT_RECURSION_LIMIT", "40"))
MAX_SEARCH_STEPS = int(os.getenv("CLARITY_MAX_SEARCH_STEPS", "4"))
MAX_REVIEW_ROUNDS = int(os.getenv("CLARITY_MAX_REVIEW_ROUNDS", "2"))
MAX_SUPERVISOR_ROUNDS = int(os.getenv("CLARITY_MAX_SUPERVISOR_ROUNDS", "8"))

# Orchestrator
HANDLE_CACHE_SIZE = int(os.getenv("CLARITY_HANDLE_CACHE_SIZE", "256"))
HANDLE_TTL_SECONDS = int(os.getenv("CLARITY_HANDLE_TTL_SECONDS", "3600"))
AGENT_TIMEOUT_SECONDS = float(os.getenv("CLARITY_AGENT_TIMEOUT_SECONDS", "0"))
HISTORY_TOOL_RESULT_LOOKBACK = int(os.getenv("CLARITY_HISTORY_LOOKBACK", "8"))

# USD per 1M tokens
TOKEN_PRICING: dict[str, dict[str, float]] = {
    "gemini-2.5-flash": {"input": 0.30, "output": 2.50},
    "gemini-2.5-pro": {"input": 1.25, "output": 10.00},
    "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
}
DEFAULT_PRICING_MODEL = SUPERVISOR_MODEL

DEV_USER_ID = "00000000-0000-0000-0000-000000000000"


def get_gemini_api_key() -> str:
    """
    Return the GEMINI_API_KEY from the environment.

    This function is the single source of truth for accessing the Gemini API key.
    It never reads the .env file directly; python-dotenv is used to populate
    environment variables before access.
    """
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        logger.error("GEMINI_API_KEY environment variable is not set.")
        raise RuntimeError("GEMINI_API_KEY environment variable is required to use Gemini.")
    return api_key


def get_brave_api_key() -> str:
    """Return the Brave Search subscription token used by the search tools."""
    api_key = os.getenv("BRAVE_SEARCH_API_KEY")
    if not api_key:
        logger.error("BRAVE_SEARCH_API_KEY environment variable is not set.")
        raise RuntimeError(
            "BRAVE_SEARCH_API_KEY environment variable is required for Brave search."
        )
    return api_key


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./clarity.db")


def get_environment() -> str:
    return os.getenv("CLARITY_ENV", "development").strip().lower()


def is_development() -> bool:
    return get_environment() == "development"


def get_api_tokens() -> dict[str, str]:
    """
    Parse CLARITY_API_TOKENS ("token:user_id,token:user_id") into a mapping.

    Malformed entries are skipped with a warning rather than failing startup.
    """
    raw = os.getenv("CLARITY_API_TOKENS", "")
    tokens: dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        token, sep, user_id = entry.partition(":")
        if not sep or not token.strip() or not user_id.strip():
            logger.warning("Ignoring malformed CLARITY_API_TOKENS entry.")
            continue
        tokens[token.strip()] = user_id.strip()
    return tokens
