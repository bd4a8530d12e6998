import logging

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.tools import tool
from langchain_google_genai import ChatGoogleGenerativeAI

from config import SEARCHER_MODEL, get_gemini_api_key
from tools.schemas import LanguageHint
from utils.prompts import LANGUAGE_SYSTEM_PROMPT


logger = logging.getLogger(__name__)


_language_model = None
_language_structured = None


def _get_language_model() -> ChatGoogleGenerativeAI:
    global _language_model
    if _language_model is None:
        _language_model = ChatGoogleGenerativeAI(
            model=SEARCHER_MODEL,
            api_key=get_gemini_api_key(),
            temperature=0.0,
        )
    return _language_model


def _get_language_structured():
    global _language_structured
    if _language_structured is None:
        _language_structured = _get_language_model().with_structured_output(LanguageHint)
    return _language_structured


@tool
def determine_search_language(user_message: str) -> str:
    """Determine the most useful search language(s) and keywords for a user's query.

    Returns JSON {"language": [...], "intent": "..."}.
    """
    hint = _get_language_structured().invoke(
        [
            SystemMessage(content=LANGUAGE_SYSTEM_PROMPT),
            HumanMessage(content=user_message),
        ]
    )
    if not hint.language:
        hint = LanguageHint(language=["English"], intent=hint.intent)
    logger.info("Determined search language: %s (intent=%s)", hint.language, hint.intent)
    return hint.model_dump_json(exclude_none=True)


__all__ = ["determine_search_language"]
