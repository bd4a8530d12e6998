import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from config import DEFAULT_PRICING_MODEL, TOKEN_PRICING
from messages.classifier import AgentMessage, classify
from messages.raw import ERROR_SENTINEL


logger = logging.getLogger(__name__)


class ParsedAgentResponse(BaseModel):
    final_text: str
    trace: list[AgentMessage] = Field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    @classmethod
    def error(cls) -> "ParsedAgentResponse":
        return cls(final_text=ERROR_SENTINEL, trace=[])


def calculate_cost(
    input_tokens: int, output_tokens: int, model: Optional[str] = None
) -> float:
    """
    Cost in USD for the given token counts, rounded to 6 decimal places.

    Unknown models are priced as the default model.
    """
    pricing = TOKEN_PRICING.get(model or DEFAULT_PRICING_MODEL) or TOKEN_PRICING.get(
        DEFAULT_PRICING_MODEL, {"input": 0.0, "output": 0.0}
    )
    cost = (input_tokens / 1_000_000) * pricing["input"] + (
        output_tokens / 1_000_000
    ) * pricing["output"]
    return round(cost, 6)


def _sum_usage(trace: list[AgentMessage]) -> tuple[int, int]:
    input_tokens = 0
    output_tokens = 0
    for entry in trace:
        usage = entry.metadata.get("usage_metadata") or {}
        input_tokens += int(usage.get("input_tokens") or 0)
        output_tokens += int(usage.get("output_tokens") or 0)
    return input_tokens, output_tokens


def extract(raw: Any, model: Optional[str] = None) -> ParsedAgentResponse:
    """
    Reduce a raw runtime message list to the final answer plus its full trace.

    Falls back to the error sentinel when the input is empty or the current
    turn has no final `message` entry.
    """
    if not raw:
        return ParsedAgentResponse.error()

    trace = classify(raw)

    final_text = ERROR_SENTINEL
    for entry in trace:
        if entry.kind == "message":
            final_text = entry.content

    if final_text == ERROR_SENTINEL:
        logger.warning("No final message found in a trace of %d entries.", len(trace))

    input_tokens, output_tokens = _sum_usage(trace)
    return ParsedAgentResponse(
        final_text=final_text,
        trace=trace,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cost=calculate_cost(input_tokens, output_tokens, model),
    )


__all__ = ["ParsedAgentResponse", "calculate_cost", "extract"]
