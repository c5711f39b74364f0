"""Glue between ``SessionTimer`` and the document store / HTTP identity."""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from tsureben.core.errors import ManualEntryRequired, OrphanedSession
from tsureben.core.security import decode_token, token_expired
from tsureben.models.user import User
from tsureben.schemas.pomodoro import PomodoroLogEntry, TimerAnchor, TimerState, TimerStatus
from tsureben.services.document_store import (
    ACTIVE_USERS,
    POMODORO_LOGS,
    TIMER_ANCHORS,
    DocumentStore,
)
from tsureben.services.presence import announcement_for
from tsureben.services.session_timer import SessionTimer

logger = logging.getLogger(__name__)


def parse_logs(document: dict[str, Any] | None, owner: str = "") -> dict[str, list[PomodoroLogEntry]]:
    logs: dict[str, list[PomodoroLogEntry]] = {}
    for day, items in (document or {}).items():
        if not isinstance(items, list):
            logger.warning(f"Quarantined non-list log day {day} for {owner}")
            continue
        entries = []
        for item in items:
            try:
                entries.append(PomodoroLogEntry.model_validate({"date": day, **item}))
            except (ValidationError, TypeError):
                logger.warning(f"Quarantined malformed log entry {day} for {owner}: {item!r}")
        logs[day] = entries
    return logs


def load_logs(store: DocumentStore, email: str) -> dict[str, list[PomodoroLogEntry]]:
    return parse_logs(store.get(POMODORO_LOGS, email), email)


def load_anchor(store: DocumentStore, email: str) -> TimerAnchor | None:
    data = store.get(TIMER_ANCHORS, email)
    if data is None:
        return None
    try:
        return TimerAnchor.model_validate(data)
    except ValidationError:
        logger.warning(f"Quarantined malformed timer anchor for {email}")
        return None


def find_open_entry(entries: list, start_time: str) -> int | None:
    """Index of the latest raw entry with ``startTime`` and no duration."""
    for position in range(len(entries) - 1, -1, -1):
        item = entries[position]
        if (
            isinstance(item, dict)
            and item.get("startTime") == start_time
            and item.get("duration") is None
        ):
            return position
    return None


def orphaned_entries(
    store: DocumentStore, email: str, anchor: TimerAnchor | None
) -> list[PomodoroLogEntry]:
    """Null-duration log entries no live session can ever close."""
    live = None
    if anchor is not None and anchor.session_date and anchor.initial_start_time:
        live = (anchor.session_date, anchor.initial_start_time.strftime("%H:%M"))
    orphans = []
    for day, entries in sorted(load_logs(store, email).items()):
        for entry in entries:
            if entry.in_progress and (day, entry.start_time) != live:
                orphans.append(entry)
    return orphans


class StoreSessionSink:
    def __init__(
        self,
        store: DocumentStore,
        user: User,
        lookup_attempts: int = 3,
        retry_delay: float = 0.1,
    ) -> None:
        self.store = store
        self.user = user
        self.lookup_attempts = lookup_attempts
        self.retry_delay = retry_delay

    def open_session(self, log_entry: PomodoroLogEntry) -> None:
        logs = self.store.get(POMODORO_LOGS, self.user.email) or {}
        day = logs.get(log_entry.date)
        day = list(day) if isinstance(day, list) else []
        day.append(log_entry.to_document())
        logs[log_entry.date] = day
        self.store.set(POMODORO_LOGS, self.user.email, logs)
        self.store.set(
            ACTIVE_USERS,
            self.user.email,
            announcement_for(self.user, log_entry).to_document(),
        )

    def close_session(self, session_date: str, start_time: str, minutes: int) -> None:
        for attempt in range(1, self.lookup_attempts + 1):
            logs = self.store.get(POMODORO_LOGS, self.user.email) or {}
            day = logs.get(session_date)
            day = day if isinstance(day, list) else []
            position = find_open_entry(day, start_time)
            if position is not None:
                day[position]["duration"] = minutes
                logs[session_date] = day
                self.store.set(POMODORO_LOGS, self.user.email, logs)
                return
            logger.warning(
                f"Open log entry {session_date} {start_time} not found for "
                f"{self.user.email} (attempt {attempt}/{self.lookup_attempts})"
            )
            if attempt < self.lookup_attempts and self.retry_delay:
                time.sleep(self.retry_delay)
        raise OrphanedSession(
            f"No in-progress log entry for {session_date} {start_time}"
        )

    def withdraw(self) -> None:
        self.store.delete(ACTIVE_USERS, self.user.email)

    def claim_anchor(self, anchor: TimerAnchor) -> bool:
        if self.store.create(TIMER_ANCHORS, self.user.email, anchor.to_document()):
            return True
        existing = load_anchor(self.store, self.user.email)
        if existing is not None and existing.state in (TimerState.RUNNING, TimerState.PAUSED):
            return False
        # stale or malformed leftover; nothing live owns it
        logger.warning(f"Replacing stale timer anchor for {self.user.email}")
        self.store.set(TIMER_ANCHORS, self.user.email, anchor.to_document())
        return True

    def save_anchor(self, anchor: TimerAnchor) -> None:
        self.store.set(TIMER_ANCHORS, self.user.email, anchor.to_document())

    def clear_anchor(self) -> None:
        self.store.delete(TIMER_ANCHORS, self.user.email)


class TokenIdentity:
    """Identity backed by the caller's access token and optional refresh token."""

    def __init__(self, email: str, claims: dict[str, Any], refresh_token: str | None, now: datetime) -> None:
        self.email = email
        self.claims = claims
        self.refresh_token = refresh_token
        self.now = now

    def is_valid(self) -> bool:
        return not token_expired(self.claims, self.now)

    def reauthenticate(self) -> bool:
        if not self.refresh_token:
            return False
        try:
            data = decode_token(self.refresh_token)
        except ValueError:
            logger.info(f"Silent re-authentication failed for {self.email}")
            return False
        return data.get("type") == "refresh" and data.get("sub") == self.email


class PayloadPrompt:
    """Answers the manual-entry prompt once from the request body.

    A second question (missing or rejected answer) is surfaced to the client
    as ``ManualEntryRequired`` so it can ask the user and retry.
    """

    def __init__(self, manual_minutes: int | str | None) -> None:
        self.manual_minutes = manual_minutes
        self.asked = False

    def __call__(self, reason: str) -> int | str | None:
        if self.asked or self.manual_minutes is None:
            raise ManualEntryRequired(reason)
        self.asked = True
        return self.manual_minutes


def timer_status(
    timer: SessionTimer, now: datetime, orphans: list[PomodoroLogEntry] | None = None
) -> TimerStatus:
    elapsed = timer.elapsed_seconds(now)
    return TimerStatus(
        state=timer.state,
        elapsed_seconds=elapsed,
        unsaved=elapsed > 0,
        session_date=timer.session_date,
        initial_start_time=timer.initial_start_time,
        plan=timer.plan,
        orphaned_entries=orphans or [],
    )
