"""
Live subscriptions over the submission store.

A Subscription is an explicit, owned handle on a standing query. Opening it
pushes the full matching record set; every write touching a matching record
pushes the full set again. Cancelling releases it, and leaving an
``async with`` block always cancels.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from schemas import SubmissionRecord

logger = logging.getLogger(__name__)

Snapshot = List[SubmissionRecord]

_CLOSED = object()


class Subscription:

    def __init__(
        self,
        hub: "SubscriptionHub",
        name: str,
        predicate: Callable[[SubmissionRecord], bool],
        fetch: Callable[[], Awaitable[Snapshot]],
    ):
        self.name = name
        self._hub = hub
        self._predicate = predicate
        self._fetch = fetch
        self._queue: asyncio.Queue = asyncio.Queue()
        self._opened = False
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self._opened and not self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def matches(self, record: SubmissionRecord) -> bool:
        return self._predicate(record)

    async def open(self) -> "Subscription":
        if self._cancelled:
            raise RuntimeError(f"Subscription {self.name} was cancelled")
        if not self._opened:
            self._opened = True
            self._hub.register(self)
            logger.info(f"Opened subscription {self.name}")
            await self.refresh()
        return self

    async def refresh(self):
        """Re-run the query and queue the full result set."""
        if not self.active:
            return
        try:
            snapshot = await self._fetch()
        except Exception as e:
            logger.error(f"Subscription {self.name} refresh failed: {e}")
            self._queue.put_nowait(e)
            return
        self._queue.put_nowait(snapshot)

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        self._hub.unregister(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        logger.info(f"Cancelled subscription {self.name}")

    async def next(self, timeout: Optional[float] = None) -> Snapshot:
        """Wait for the next pushed snapshot."""
        return await asyncio.wait_for(self.__anext__(), timeout)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Snapshot:
        if self._cancelled and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def __aenter__(self) -> "Subscription":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        self.cancel()


class SubscriptionHub:
    """Fans store changes out to the open subscriptions they match."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def __len__(self):
        return len(self._subscriptions)

    def register(self, subscription: Subscription):
        self._subscriptions.append(subscription)

    def unregister(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, *records: Optional[SubmissionRecord]):
        """Notify every subscription matching any of the changed records."""
        changed = [r for r in records if r is not None]
        for subscription in list(self._subscriptions):
            if any(subscription.matches(r) for r in changed):
                await subscription.refresh()
