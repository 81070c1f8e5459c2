"""
Thread Lease Registry
In-process single-flight guard and cooldown for agent runs on the local send path,
and the marker of threads with a reply in flight
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Dict, Optional

from pydantic import BaseModel, Field

from inbox_agent.config import settings

logger = logging.getLogger(__name__)


class ThreadLease(BaseModel):
    thread_id: str
    acquired_at: float
    expires_at: float
    token: str = Field(default_factory=lambda: uuid.uuid4().hex)


class ThreadLeaseRegistry:
    """
    Per-thread leases with TTL expiry and a cooldown between run starts.

    A thread can hold at most one live lease. A new lease is refused while
    another is live, or while less than `cooldown_seconds` have passed since
    the previous lease was acquired. Leases older than `ttl_seconds` are
    treated as stale and no longer block.
    """

    def __init__(
        self,
        cooldown_seconds: Optional[float] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.AGENT_COOLDOWN_SECONDS
        )
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.AGENT_LEASE_TTL_SECONDS
        self._clock = clock
        self._leases: Dict[str, ThreadLease] = {}
        self._last_started: Dict[str, float] = {}

    def _live_lease(self, thread_id: str, now: float) -> Optional[ThreadLease]:
        lease = self._leases.get(thread_id)
        if lease is None:
            return None
        if lease.expires_at <= now:
            logger.warning(f"⌛ Stale agent lease expired for thread {thread_id}")
            del self._leases[thread_id]
            return None
        return lease

    def try_acquire(self, thread_id: str) -> Optional[ThreadLease]:
        now = self._clock()
        if self._live_lease(thread_id, now) is not None:
            logger.info(f"⏸️ Agent already running for thread {thread_id}")
            return None

        last = self._last_started.get(thread_id)
        if last is not None and now - last < self.cooldown_seconds:
            logger.info(f"⏸️ Agent cooling down for thread {thread_id}")
            return None

        lease = ThreadLease(thread_id=thread_id, acquired_at=now, expires_at=now + self.ttl_seconds)
        self._leases[thread_id] = lease
        self._last_started[thread_id] = now
        return lease

    def release(self, lease: ThreadLease) -> None:
        current = self._leases.get(lease.thread_id)
        # A stale lease may have been replaced by a newer holder
        if current is not None and current.token == lease.token:
            del self._leases[lease.thread_id]

    def is_active(self, thread_id: str) -> bool:
        return self._live_lease(thread_id, self._clock()) is not None

    @asynccontextmanager
    async def hold(self, thread_id: str) -> AsyncGenerator[Optional[ThreadLease], None]:
        """
        Acquire a lease for the duration of the block.

        Yields the lease, or None when the thread is busy or cooling down.
        """
        lease = self.try_acquire(thread_id)
        try:
            yield lease
        finally:
            if lease is not None:
                self.release(lease)

    def reset(self) -> None:
        self._leases.clear()
        self._last_started.clear()


# Process-wide registry for the local send path
thread_leases = ThreadLeaseRegistry()


class ActiveRunRegistry:
    """
    Threads with an agent reply in flight, on either trigger path.

    Unlike leases this never refuses a run; overlapping runs on the same
    thread are counted so the thread stays marked until the last one ends.
    """

    def __init__(self):
        self._counts: Dict[str, int] = {}

    def is_replying(self, thread_id: str) -> bool:
        return self._counts.get(thread_id, 0) > 0

    @asynccontextmanager
    async def track(self, thread_id: str) -> AsyncGenerator[None, None]:
        self._counts[thread_id] = self._counts.get(thread_id, 0) + 1
        try:
            yield
        finally:
            remaining = self._counts.get(thread_id, 1) - 1
            if remaining > 0:
                self._counts[thread_id] = remaining
            else:
                self._counts.pop(thread_id, None)

    def reset(self) -> None:
        self._counts.clear()


# Process-wide marker of replies being generated or delivered
active_runs = ActiveRunRegistry()
