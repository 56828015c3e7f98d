# utils/complaint_feed.py
"""
Live complaint feed.

Writers call ``publish`` after committing a change. Readers hold a
subscription for as long as a view is open:

    async with feed.subscribe(load_snapshot) as stream:
        async for snapshot in stream:
            ...

Each iteration yields the newest full result set produced by
``load_snapshot``; no diffs are exposed. Several changes arriving before the
reader catches up collapse into one snapshot. Leaving the ``async with``
block always releases the subscription.
"""

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Set

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], Any]


class _Subscription:
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._changed = asyncio.Event()

    def wake(self) -> None:
        # publishers run in worker threads; hop onto the subscriber's loop
        try:
            self._loop.call_soon_threadsafe(self._changed.set)
        except RuntimeError:
            # loop already closed; the owning subscribe() block releases us
            pass

    async def wait(self) -> None:
        await self._changed.wait()
        self._changed.clear()


class ComplaintStream:
    def __init__(self, subscription: _Subscription, load_snapshot: SnapshotLoader):
        self._subscription = subscription
        self._load_snapshot = load_snapshot
        self._primed = False

    def __aiter__(self) -> "ComplaintStream":
        return self

    async def __anext__(self) -> Any:
        if self._primed:
            await self._subscription.wait()
        self._primed = True
        return await run_in_threadpool(self._load_snapshot)


class ComplaintFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Set[_Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, change: str, complaint_id: Any = None) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug("[ComplaintFeed] %s %s -> %d subscriber(s)", change, complaint_id, len(subscribers))
        for sub in subscribers:
            sub.wake()

    @asynccontextmanager
    async def subscribe(self, load_snapshot: SnapshotLoader) -> AsyncIterator[ComplaintStream]:
        sub = _Subscription(asyncio.get_running_loop())
        with self._lock:
            self._subscribers.add(sub)
        logger.info("[ComplaintFeed] subscriber added (%d open)", self.subscriber_count)
        try:
            yield ComplaintStream(sub, load_snapshot)
        finally:
            with self._lock:
                self._subscribers.discard(sub)
            logger.info("[ComplaintFeed] subscriber released (%d open)", self.subscriber_count)


def get_feed(request: Request) -> ComplaintFeed:
    return request.app.state.complaint_feed
