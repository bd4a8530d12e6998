import logging
from datetime import datetime, timezone
from typing import Any

from langchain_core.messages import AIMessage


logger = logging.getLogger(__name__)


def current_date() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def message_text(response: Any, agent_name: str) -> str:
    """
    Plain text of a model response.

    Gemini returns either a string or a list of content blocks; text blocks are
    joined. Non-AIMessage responses are a programming error.
    """
    if not isinstance(response, AIMessage):
        logger.error("Unexpected response type from %s model: %s", agent_name, type(response))
        raise RuntimeError(f"Unexpected response type from {agent_name} model.")

    content = response.content
    if isinstance(content, str):
        return content.strip()

    text_blocks: list[str] = []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, str):
                text_blocks.append(block)
            elif isinstance(block, dict):
                value = block.get("text")
                if isinstance(value, str):
                    text_blocks.append(value)
    return "\n".join(text_blocks).strip()


__all__ = ["current_date", "message_text"]
