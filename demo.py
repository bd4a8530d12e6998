"""
Demo script: runs two research turns in-process and prints what the chat UI
would show.

Requires GEMINI_API_KEY and BRAVE_SEARCH_API_KEY in .env. Uses an in-memory
database, the change feed and a client-side reconciler, so every stage of
the pipeline (persist, agent run, trace rows, realtime delivery) runs:
  - Turn 1: A news question
  - Turn 2: A follow-up that relies on the conversation context
"""

from __future__ import annotations

import asyncio

import config
from db.connection import create_db_engine, create_session_factory, init_db
from orchestrator.orchestrator import AgentOrchestrator
from realtime.delivery import DeliveryBridge, MessageReconciler
from realtime.feed import ChangeFeed
from services.chat_db import ChatDBService, MessageStatus
from services.processing import MessageProcessor


# ANSI colors
GREEN = "\033[92m"
CYAN = "\033[96m"
YELLOW = "\033[93m"
BOLD = "\033[1m"
RESET = "\033[0m"

MAX_RESPONSE_LEN = 800

TURNS = [
    "What are the latest developments in battery recycling?",
    "Which of those companies are based in Europe?",
]


def _shorten(text: str) -> str:
    text = text.strip()
    if len(text) > MAX_RESPONSE_LEN:
        return text[:MAX_RESPONSE_LEN] + "..."
    return text


def _print_turn(query: str, reconciler: MessageReconciler, start: int) -> None:
    print(f"{GREEN}{BOLD}User query:{RESET} {GREEN}{query}{RESET}")
    for message in reconciler.messages[start:]:
        if message.sender == "user":
            continue
        if message.message_type == "message":
            print(f"{BOLD}Answer:{RESET}\n{_shorten(message.content)}")
        else:
            label = message.message_type
            print(f"{CYAN}[{label}] {_shorten(message.content)[:120]}{RESET}")
    print(f"{CYAN}agent_thinking={reconciler.agent_thinking}{RESET}")
    print("-" * 60)


async def _run() -> None:
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    feed = ChangeFeed()
    db = ChatDBService(create_session_factory(engine), feed=feed)
    orchestrator = AgentOrchestrator()
    processor = MessageProcessor(db, orchestrator)

    conversation = db.create_conversation(config.DEV_USER_ID, TURNS[0])
    reconciler = MessageReconciler(conversation.id)
    bridge = DeliveryBridge(feed, reconciler)
    bridge.start()

    try:
        for query in TURNS:
            start = len(reconciler.messages)
            local = reconciler.submit_local(query)
            record = await asyncio.to_thread(
                db.insert_message,
                conversation.id,
                query,
                "user",
                MessageStatus.sent.value,
                client_key=local.client_key,
            )
            await processor.process(conversation.id, record.id, query, config.DEV_USER_ID)
            # Let the bridge drain the feed before printing.
            await asyncio.sleep(0.1)
            _print_turn(query, reconciler, start)

        usage = db.get_usage_summary(conversation.id)
        if usage is not None:
            print(
                f"{YELLOW}Usage: {usage.input_tokens} input tokens, "
                f"{usage.output_tokens} output tokens, ${usage.cost:.6f}{RESET}"
            )
    finally:
        await bridge.stop()
        orchestrator.shutdown()


def main() -> None:
    print(f"{BOLD}Running Clarity demo conversation...{RESET}")
    try:
        asyncio.run(_run())
    except Exception as e:
        print(f"\n{YELLOW}Demo failed{RESET}")
        print(f"Exception: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    main()
