"""Live queries over the SQL store.

Commits are observed through SQLAlchemy session events. Every commit that
touched a table is published on a :class:`ChangeFeed`; each open
:class:`Subscription` interested in that table re-runs its query and hands the
listener a new snapshot when the result changed. :class:`SnapshotStream`
adapts a subscription to an ``async for`` loop for streaming endpoints.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from itertools import chain
from typing import Any, Callable, Generic, Iterable, TypeVar

from sqlalchemy import event
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHANGED_TABLES_KEY = "screentime.changed_tables"


class Subscription(Generic[T]):
    """Handle for one live query. Close it when the consumer goes away."""

    def __init__(
        self,
        feed: "ChangeFeed",
        tables: Iterable[str],
        evaluate: Callable[[], T],
        listener: Callable[[T], None],
        on_error: Callable[[Exception], None] | None = None,
        *,
        key: Callable[[T], Any] | None = None,
        name: str = "query",
    ) -> None:
        self.tables = frozenset(tables)
        self.name = name
        self._feed = feed
        self._evaluate = evaluate
        self._listener = listener
        self._on_error = on_error
        self._key = key or (lambda value: value)
        self._lock = threading.Lock()
        self._last_key: Any = None
        self._delivered = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def refresh(self) -> bool:
        """Re-run the query and deliver it if it differs from the last delivery."""

        with self._lock:
            if self._closed:
                return False
            try:
                value = self._evaluate()
            except Exception as exc:
                logger.exception(
                    "live.refresh_failed",
                    extra={"extra_data": {"subscription": self.name}},
                )
                if self._on_error is not None:
                    self._on_error(exc)
                return False
            marker = self._key(value)
            if self._delivered and marker == self._last_key:
                return False
            self._last_key = marker
            self._delivered = True
        self._listener(value)
        return True

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._feed.unregister(self)

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ChangeFeed:
    """Thread-safe fan-out of committed table changes to subscriptions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription[Any]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(
        self,
        tables: Iterable[str],
        evaluate: Callable[[], T],
        listener: Callable[[T], None],
        on_error: Callable[[Exception], None] | None = None,
        *,
        key: Callable[[T], Any] | None = None,
        name: str = "query",
    ) -> Subscription[T]:
        """Register a live query and deliver its first result immediately."""

        subscription = Subscription(self, tables, evaluate, listener, on_error, key=key, name=name)
        with self._lock:
            self._subscriptions.append(subscription)
        subscription.refresh()
        return subscription

    def unregister(self, subscription: Subscription[Any]) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                pass

    def publish(self, tables: Iterable[str]) -> int:
        changed = frozenset(tables)
        with self._lock:
            targets = [sub for sub in self._subscriptions if sub.tables & changed]
        delivered = 0
        for subscription in targets:
            # A failing listener must not fail the commit that triggered it.
            try:
                if subscription.refresh():
                    delivered += 1
            except Exception:
                logger.exception(
                    "live.listener_failed",
                    extra={"extra_data": {"subscription": subscription.name}},
                )
        return delivered


change_feed = ChangeFeed()


def _table_name(instance: object) -> str | None:
    return getattr(type(instance), "__tablename__", None)


def _collect_changes(session: Session, flush_context) -> None:
    changed = session.info.setdefault(CHANGED_TABLES_KEY, set())
    for instance in chain(session.new, session.dirty, session.deleted):
        name = _table_name(instance)
        if name:
            changed.add(name)


def _publish_changes(session: Session) -> None:
    changed = session.info.pop(CHANGED_TABLES_KEY, None)
    if changed:
        change_feed.publish(changed)


def _discard_changes(session: Session) -> None:
    session.info.pop(CHANGED_TABLES_KEY, None)


def install_change_tracking(target: Any = Session) -> None:
    """Publish committed changes from every session created from ``target``."""

    if event.contains(target, "after_commit", _publish_changes):
        return
    event.listen(target, "after_flush", _collect_changes)
    event.listen(target, "after_commit", _publish_changes)
    event.listen(target, "after_rollback", _discard_changes)


install_change_tracking()


class _Closed:
    pass


class _Failed:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc


_CLOSED = _Closed()


class SnapshotStream(Generic[T]):
    """Async iterator over the snapshots of a live query.

    With ``idle_timeout`` set, a quiet period re-evaluates the query (time
    based results such as the current week can change without a commit) and
    yields ``None`` so callers can emit a keep-alive.
    """

    def __init__(self, *, idle_timeout: float | None = None) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._idle_timeout = idle_timeout
        self._subscription: Subscription[T] | None = None
        self._closed = False
        self._finished = False

    @classmethod
    async def open(
        cls,
        subscribe: Callable[[Callable[[T], None], Callable[[Exception], None]], Subscription[T]],
        *,
        idle_timeout: float | None = None,
    ) -> "SnapshotStream[T]":
        stream = cls(idle_timeout=idle_timeout)
        stream._subscription = await run_in_threadpool(subscribe, stream._deliver, stream._fail)
        if stream._closed:
            stream._subscription.close()
        return stream

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item: Any) -> None:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            logger.debug("live.stream_loop_closed")

    def _deliver(self, snapshot: T) -> None:
        if not self._closed:
            self._put(snapshot)

    def _fail(self, exc: Exception) -> None:
        if not self._closed:
            self._put(_Failed(exc))

    def close(self) -> None:
        """Stop the stream. Safe to call from any thread, more than once."""

        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
        self._put(_CLOSED)

    def __aiter__(self) -> "SnapshotStream[T]":
        return self

    async def __anext__(self) -> T | None:
        if self._finished:
            raise StopAsyncIteration
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=self._idle_timeout)
        except asyncio.TimeoutError:
            if self._subscription is not None and not self._closed:
                await run_in_threadpool(self._subscription.refresh)
            return None
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, _Failed):
            self._finished = True
            self.close()
            raise item.exc
        return item

    async def aclose(self) -> None:
        self.close()


__all__ = [
    "ChangeFeed",
    "SnapshotStream",
    "Subscription",
    "change_feed",
    "install_change_tracking",
]
