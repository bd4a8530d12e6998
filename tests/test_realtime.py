import asyncio
import threading
from datetime import datetime, timedelta, timezone

from realtime.delivery import DeliveryBridge, MessageReconciler
from realtime.feed import ChangeEvent, ChangeFeed


T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _row(message_id: str, content: str, sender: str = "agent", status: str = "completed", **extra):
    row = {
        "id": message_id,
        "conversation_id": "c1",
        "content": content,
        "sender": sender,
        "status": status,
        "message_type": "message" if sender == "agent" else "text",
        "metadata": None,
        "client_key": None,
        "created_at": T0.isoformat(),
    }
    row.update(extra)
    return row


def _reconciler() -> MessageReconciler:
    return MessageReconciler("c1", clock=lambda: T0)


def test_submit_local_is_optimistic_and_sets_thinking():
    reconciler = _reconciler()
    local = reconciler.submit_local("hello")

    assert local.id.startswith("temp-")
    assert local.status == "sent"
    assert local.client_key
    assert reconciler.agent_thinking is True
    assert reconciler.messages == [local]


def test_insert_matching_client_key_replaces_local_row():
    reconciler = _reconciler()
    local = reconciler.submit_local("hello")

    changed = reconciler.apply_insert(
        _row("srv-1", "hello", sender="user", status="sent", client_key=local.client_key)
    )

    assert changed is True
    assert [m.id for m in reconciler.messages] == ["srv-1"]
    assert reconciler.agent_thinking is True


def test_insert_without_key_uses_content_heuristic_and_adopts_id():
    reconciler = _reconciler()
    reconciler.submit_local("hello")

    changed = reconciler.apply_insert(_row("srv-1", "hello", sender="user", status="sent"))

    assert changed is False
    assert [m.id for m in reconciler.messages] == ["srv-1"]

    # Later updates now find the row.
    assert reconciler.apply_update(_row("srv-1", "hello", sender="user", status="responded"))
    assert reconciler.messages[0].status == "responded"


def test_heuristic_window_is_five_seconds():
    reconciler = _reconciler()
    reconciler.submit_local("hello")
    late = (T0 + timedelta(seconds=6)).isoformat()

    reconciler.apply_insert(_row("srv-1", "hello", sender="user", status="sent", created_at=late))

    assert len(reconciler.messages) == 2


def test_duplicate_id_is_ignored():
    reconciler = _reconciler()
    assert reconciler.apply_insert(_row("a1", "answer")) is True
    assert reconciler.apply_insert(_row("a1", "answer")) is False
    assert len(reconciler.messages) == 1


def test_agent_completion_clears_thinking():
    reconciler = _reconciler()
    reconciler.submit_local("hello")
    reconciler.apply_insert(_row("t1", "thinking", status="completed", message_type="thought"))

    assert reconciler.agent_thinking is False


def test_update_replaces_fields_in_place():
    reconciler = _reconciler()
    reconciler.apply_insert(_row("a1", "draft", status="processing"))

    reconciler.apply_update(_row("a1", "final", status="completed", metadata={"k": 1}))

    message = reconciler.messages[0]
    assert message.content == "final"
    assert message.status == "completed"
    assert message.metadata == {"k": 1}
    assert reconciler.apply_update(_row("unknown", "x")) is False


def test_feed_delivers_only_to_conversation_subscribers():
    async def scenario():
        feed = ChangeFeed()
        mine = feed.subscribe("c1")
        other = feed.subscribe("c2")
        delivered = feed.publish(ChangeEvent("insert", "c1", {"id": "m1"}))
        event = await asyncio.wait_for(mine.__anext__(), timeout=1)
        mine.close()
        other.close()
        return delivered, event, feed.subscriber_count("c1")

    delivered, event, remaining = asyncio.run(scenario())

    assert delivered == 1
    assert event.row == {"id": "m1"}
    assert event.to_payload() == {
        "event": "insert",
        "table": "messages",
        "conversationId": "c1",
        "row": {"id": "m1"},
    }
    assert remaining == 0


def test_conversation_events_reach_only_the_owner_list():
    async def scenario():
        feed = ChangeFeed()
        alice = feed.subscribe_conversations("alice")
        bob = feed.subscribe_conversations("bob")
        messages = feed.subscribe("c1")
        delivered = feed.publish(
            ChangeEvent("update", "c1", {"id": "c1", "user_id": "alice", "title": "New"}, table="conversations")
        )
        event = await asyncio.wait_for(alice.__anext__(), timeout=1)
        pending = (bob._queue.qsize(), messages._queue.qsize())
        for subscription in (alice, bob, messages):
            subscription.close()
        return delivered, event, pending

    delivered, event, pending = asyncio.run(scenario())

    assert delivered == 1
    assert event.to_payload()["table"] == "conversations"
    assert event.row["title"] == "New"
    assert pending == (0, 0)


def test_feed_publish_from_worker_thread():
    async def scenario():
        feed = ChangeFeed()
        subscription = feed.subscribe("c1")
        thread = threading.Thread(
            target=feed.publish, args=(ChangeEvent("update", "c1", {"id": "m1"}),)
        )
        thread.start()
        thread.join()
        event = await asyncio.wait_for(subscription.__anext__(), timeout=1)
        subscription.close()
        return event

    assert asyncio.run(scenario()).event == "update"


def test_bridge_forwards_and_switches():
    async def scenario():
        feed = ChangeFeed()
        bridge = DeliveryBridge(feed, _reconciler())
        bridge.start()
        feed.publish(ChangeEvent("insert", "c1", _row("a1", "answer")))
        await asyncio.sleep(0.01)
        first = bridge.reconciler

        second = await bridge.switch("c2")
        feed.publish(ChangeEvent("insert", "c1", _row("a2", "ignored")))
        feed.publish(ChangeEvent("insert", "c2", _row("b1", "other", conversation_id="c2")))
        await asyncio.sleep(0.01)
        await bridge.stop()
        return first, second, bridge.running, feed.subscriber_count("c1")

    first, second, running, c1_subscribers = asyncio.run(scenario())

    assert [m.id for m in first.messages] == ["a1"]
    assert [m.id for m in second.messages] == ["b1"]
    assert running is False
    assert c1_subscribers == 0
