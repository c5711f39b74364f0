"""Document store over the ``documents`` table, plus in-process change fan-out.

Collections used by the app:

* ``studyPlans/{email}``          ``{date: {hour: [StudyPlanEntry, ...]}}``
* ``studyPomodoroLogs/{email}``   ``{date: [PomodoroLogEntry, ...]}``
* ``activePomodoroUsers/{email}`` ``ActiveSessionAnnouncement``
* ``pomodoroTimers/{email}``      ``TimerAnchor``
* ``studySummaries/{window}``     ``{email: {totalMinutes, score}}``
"""
from __future__ import annotations

import asyncio
import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tsureben.core.errors import StoreError
from tsureben.models.document import Document

logger = logging.getLogger(__name__)

STUDY_PLANS = "studyPlans"
POMODORO_LOGS = "studyPomodoroLogs"
ACTIVE_USERS = "activePomodoroUsers"
TIMER_ANCHORS = "pomodoroTimers"
SUMMARIES = "studySummaries"


@dataclass(frozen=True)
class Change:
    collection: str
    key: str
    deleted: bool = False


_CLOSED = object()


class Subscription:
    """Cancellable async stream of changes accepted by ``predicate``."""

    def __init__(
        self,
        feed: "ChangeFeed",
        predicate: Callable[[Change], bool],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._feed = feed
        self._predicate = predicate
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def _offer(self, change: Change) -> None:
        if self.closed or not self._predicate(change):
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, change)
        except RuntimeError:
            # event loop already gone
            self.close()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)
        except RuntimeError:
            pass

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Change:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class ChangeFeed:
    """Fans committed document changes out to subscribers on any thread."""

    def __init__(self) -> None:
        self._subscriptions: set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, predicate: Callable[[Change], bool] | None = None) -> Subscription:
        """Must be called from the event loop that will consume the stream."""
        subscription = Subscription(
            self, predicate or (lambda change: True), asyncio.get_running_loop()
        )
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def publish(self, change: Change) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription._offer(change)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class DocumentStore:
    def __init__(self, db: Session, feed: ChangeFeed | None = None) -> None:
        self.db = db
        self.feed = feed

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        try:
            document = self.db.get(
                Document,
                {"collection": collection, "key": key},
                populate_existing=True,
            )
        except SQLAlchemyError as exc:
            logger.exception(f"Failed to read {collection}/{key}")
            raise StoreError(f"Failed to read {collection}/{key}") from exc
        if document is None:
            return None
        return copy.deepcopy(document.data)

    def list(self, collection: str) -> dict[str, dict[str, Any]]:
        try:
            rows = self.db.execute(
                select(Document)
                .where(Document.collection == collection)
                .order_by(Document.key)
                .execution_options(populate_existing=True)
            ).scalars().all()
        except SQLAlchemyError as exc:
            logger.exception(f"Failed to list {collection}")
            raise StoreError(f"Failed to list {collection}") from exc
        return {row.key: copy.deepcopy(row.data) for row in rows}

    def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
        try:
            document = self.db.get(Document, {"collection": collection, "key": key})
            if document is None:
                document = Document(collection=collection, key=key, data=copy.deepcopy(data))
            else:
                document.data = copy.deepcopy(data)
            self.db.add(document)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Failed to write {collection}/{key}")
            raise StoreError(f"Failed to write {collection}/{key}") from exc
        self._publish(Change(collection, key))

    def create(self, collection: str, key: str, data: dict[str, Any]) -> bool:
        """Insert a new document. Returns False if one already exists.

        Concurrent callers race on the primary key; exactly one succeeds.
        """
        try:
            self.db.execute(
                insert(Document).values(
                    collection=collection, key=key, data=copy.deepcopy(data)
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Failed to create {collection}/{key}")
            raise StoreError(f"Failed to create {collection}/{key}") from exc
        self._publish(Change(collection, key))
        return True

    def delete(self, collection: str, key: str) -> bool:
        try:
            document = self.db.get(Document, {"collection": collection, "key": key})
            if document is None:
                return False
            self.db.delete(document)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Failed to delete {collection}/{key}")
            raise StoreError(f"Failed to delete {collection}/{key}") from exc
        self._publish(Change(collection, key, deleted=True))
        return True

    def _publish(self, change: Change) -> None:
        if self.feed is not None:
            self.feed.publish(change)
