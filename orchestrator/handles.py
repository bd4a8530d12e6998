"""
Bounded cache of per-conversation execution-state handles.

A handle names the checkpoint thread that lets the agent runtime resume a
conversation, and carries the lock that serializes that conversation's turns.
Handles are evicted least-recently-used first once the cache is full, and
lazily once their TTL has elapsed. Eviction invokes a teardown callback so the
checkpoint behind the handle is released as well.
"""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional


logger = logging.getLogger(__name__)


def _new_thread_id(conversation_id: str) -> str:
    return f"{conversation_id}:{uuid.uuid4().hex[:12]}"


@dataclass
class ExecutionHandle:
    """
    Attributes:
        conversation_id: Conversation this handle belongs to
        thread_id: Checkpoint thread id used for the runtime config
        lock: Serializes turns of the conversation
        turns: Number of completed turns run through this handle
        created_at: Creation timestamp
        last_used_at: Last access timestamp
    """

    conversation_id: str
    thread_id: str
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    turns: int = 0
    created_at: float = field(default_factory=time.monotonic)
    last_used_at: float = field(default_factory=time.monotonic)

    @property
    def is_fresh(self) -> bool:
        return self.turns == 0

    def is_expired(self, ttl: float, now: float) -> bool:
        if ttl < 0:
            return False
        return now - self.last_used_at >= ttl

    def touch(self, now: float) -> None:
        self.last_used_at = now


class HandleCache:
    """
    LRU + TTL cache of execution handles keyed by conversation id.

    Handles whose lock is held (a turn in progress) are never evicted.
    Intended for single-threaded async use.
    """

    def __init__(
        self,
        max_size: int = 256,
        ttl_seconds: float = 3600,
        on_evict: Optional[Callable[[ExecutionHandle], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._on_evict = on_evict
        self._clock = clock
        self._handles: OrderedDict[str, ExecutionHandle] = OrderedDict()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._handles

    def get_or_create(self, conversation_id: str) -> ExecutionHandle:
        now = self._clock()
        handle = self._handles.get(conversation_id)

        if handle is not None and handle.is_expired(self.ttl_seconds, now) and not handle.lock.locked():
            logger.info("Execution handle for conversation %s expired.", conversation_id)
            self._evict(conversation_id)
            handle = None

        if handle is None:
            handle = ExecutionHandle(
                conversation_id=conversation_id,
                thread_id=_new_thread_id(conversation_id),
                created_at=now,
                last_used_at=now,
            )
            self._handles[conversation_id] = handle
            logger.debug("Created execution handle %s.", handle.thread_id)
        else:
            self._handles.move_to_end(conversation_id)

        handle.touch(now)
        self._enforce_bounds(now, keep=conversation_id)
        return handle

    def current(self, conversation_id: str) -> Optional[ExecutionHandle]:
        """The cached handle, without touching it or checking expiry."""
        return self._handles.get(conversation_id)

    def reset(self, handle: ExecutionHandle) -> None:
        """
        Tear down the handle's checkpoint and move it to a fresh thread.

        The handle stays cached with the same lock, so turns queued on it keep
        their ordering and start from persisted history.
        """
        self._teardown(handle)
        handle.thread_id = _new_thread_id(handle.conversation_id)
        handle.turns = 0

    def remove(self, conversation_id: str) -> bool:
        """Explicit teardown, e.g. when the conversation is deleted."""
        if conversation_id not in self._handles:
            return False
        self._evict(conversation_id)
        return True

    def clear(self) -> None:
        for conversation_id in list(self._handles):
            self._evict(conversation_id)

    def _enforce_bounds(self, now: float, keep: str) -> None:
        for conversation_id, handle in list(self._handles.items()):
            if conversation_id == keep or handle.lock.locked():
                continue
            if handle.is_expired(self.ttl_seconds, now):
                self._evict(conversation_id)

        # OrderedDict iterates least recently used first
        for conversation_id, handle in list(self._handles.items()):
            if len(self._handles) <= self.max_size:
                break
            if conversation_id == keep or handle.lock.locked():
                continue
            logger.info("Evicting least recently used handle for conversation %s.", conversation_id)
            self._evict(conversation_id)

    def _evict(self, conversation_id: str) -> None:
        self._teardown(self._handles.pop(conversation_id))

    def _teardown(self, handle: ExecutionHandle) -> None:
        if self._on_evict is None:
            return
        try:
            self._on_evict(handle)
        except Exception:
            logger.exception("Teardown of execution handle %s failed.", handle.thread_id)


__all__ = ["ExecutionHandle", "HandleCache"]
