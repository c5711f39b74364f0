"""Read/write path for ``studyPlans/{email}``: ``{date: {hour: [entry, ...]}}``.

Entries are addressed by ``(date, hour, index)`` where ``index`` counts valid
entries in the bucket. Stored entries that fail validation are quarantined:
they are skipped on read and carried along untouched on write.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from tsureben.core.errors import ConfirmationRequired, PlanNotFound
from tsureben.schemas.plan import StudyPlanEntry
from tsureben.services.document_store import POMODORO_LOGS, STUDY_PLANS, DocumentStore
from tsureben.services.schedule_index import ScheduleIndex

logger = logging.getLogger(__name__)


def _split_bucket(raw: Any, day: str, hour: str) -> tuple[list[StudyPlanEntry], list[Any]]:
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        logger.warning(f"Quarantined non-list plan bucket {day}/{hour}")
        return [], []
    valid: list[StudyPlanEntry] = []
    quarantined: list[Any] = []
    for item in raw:
        try:
            valid.append(StudyPlanEntry.model_validate({"date": day, **item}))
        except (ValidationError, TypeError):
            logger.warning(f"Quarantined malformed plan entry in {day}/{hour}: {item!r}")
            quarantined.append(item)
    return valid, quarantined


def load_day_buckets(store: DocumentStore, email: str, day: str) -> dict[str, list[StudyPlanEntry]]:
    document = store.get(STUDY_PLANS, email) or {}
    raw_day = document.get(day) or {}
    if not isinstance(raw_day, dict):
        logger.warning(f"Quarantined malformed plan day {day} for {email}")
        return {}
    buckets = {}
    for hour in sorted(raw_day):
        valid, _ = _split_bucket(raw_day[hour], day, hour)
        if valid:
            buckets[hour] = valid
    return buckets


def load_day(store: DocumentStore, email: str, day: str) -> list[StudyPlanEntry]:
    return [entry for bucket in load_day_buckets(store, email, day).values() for entry in bucket]


def day_index(store: DocumentStore, email: str, day: str) -> ScheduleIndex:
    return ScheduleIndex(load_day(store, email, day), day=day)


def current_plan(
    store: DocumentStore, email: str, now: datetime
) -> tuple[StudyPlanEntry | None, list[StudyPlanEntry]]:
    index = day_index(store, email, now.date().isoformat())
    return index.find_covering(now), index.upcoming(now)


def _write_bucket(raw_day: dict, day: str, hour: str, valid: list[StudyPlanEntry], quarantined: list) -> None:
    items = [entry.to_document() for entry in valid] + quarantined
    if items:
        raw_day[hour] = items
    else:
        raw_day.pop(hour, None)


def save_entry(
    store: DocumentStore,
    email: str,
    entry: StudyPlanEntry,
    original_hour: str | None = None,
    index: int | None = None,
) -> tuple[str, int]:
    """Create ``entry`` or, with ``original_hour``/``index``, replace one.

    An edit whose start hour changed moves the entry to its new bucket.
    Returns the entry's new ``(hour, index)``.
    """
    document = store.get(STUDY_PLANS, email) or {}
    raw_day = document.get(entry.date)
    if not isinstance(raw_day, dict):
        raw_day = {}
    new_hour = entry.hour_bucket
    editing = original_hour is not None and index is not None

    if editing:
        old_valid, old_quarantined = _split_bucket(raw_day.get(original_hour, []), entry.date, original_hour)
        if not 0 <= index < len(old_valid):
            raise PlanNotFound(f"No plan at {entry.date} {original_hour}#{index}")
        if original_hour == new_hour:
            old_valid[index] = entry
            _write_bucket(raw_day, entry.date, new_hour, old_valid, old_quarantined)
            position = index
        else:
            del old_valid[index]
            _write_bucket(raw_day, entry.date, original_hour, old_valid, old_quarantined)
            editing = False

    if not editing:
        valid, quarantined = _split_bucket(raw_day.get(new_hour, []), entry.date, new_hour)
        valid.append(entry)
        _write_bucket(raw_day, entry.date, new_hour, valid, quarantined)
        position = len(valid) - 1

    document[entry.date] = raw_day
    store.set(STUDY_PLANS, email, document)
    logger.info(f"Plan saved: {email} {entry.date} {entry.start}-{entry.end} {entry.subject}")
    return new_hour, position


def delete_entry(
    store: DocumentStore, email: str, day: str, hour: str, index: int, confirm: bool = False
) -> StudyPlanEntry:
    if not confirm:
        raise ConfirmationRequired("Deleting a plan must be confirmed")
    document = store.get(STUDY_PLANS, email) or {}
    raw_day = document.get(day)
    if not isinstance(raw_day, dict) or hour not in raw_day:
        raise PlanNotFound(f"No plan at {day} {hour}#{index}")
    valid, quarantined = _split_bucket(raw_day[hour], day, hour)
    if not 0 <= index < len(valid):
        raise PlanNotFound(f"No plan at {day} {hour}#{index}")
    removed = valid.pop(index)
    _write_bucket(raw_day, day, hour, valid, quarantined)
    if raw_day:
        document[day] = raw_day
    else:
        document.pop(day, None)
    store.set(STUDY_PLANS, email, document)
    logger.info(f"Plan deleted: {email} {day} {removed.start}-{removed.end}")
    return removed


def catalog(store: DocumentStore, email: str) -> dict[str, dict[str, list[str]]]:
    """``{subject: {topic: [book, ...]}}`` across all planned entries."""
    document = store.get(STUDY_PLANS, email) or {}
    result: dict[str, dict[str, list[str]]] = {}
    for day in sorted(document):
        raw_day = document[day]
        if not isinstance(raw_day, dict):
            continue
        for hour in sorted(raw_day):
            valid, _ = _split_bucket(raw_day[hour], day, hour)
            for entry in valid:
                subject, topic, book = entry.subject.strip(), entry.topic.strip(), entry.book.strip()
                books = result.setdefault(subject, {}).setdefault(topic, [])
                if book and book not in books:
                    books.append(book)
    return result


def _rename(item: dict, topic: tuple[str, str] | None, book: tuple[str, str] | None) -> bool:
    changed = False
    if topic and topic[1].strip() and item.get("topic") == topic[0]:
        item["topic"] = topic[1]
        changed = True
    if book and book[1].strip() and item.get("book") == book[0]:
        item["book"] = book[1]
        changed = True
    return changed


def bulk_rename(
    store: DocumentStore,
    email: str,
    topic: tuple[str, str] | None = None,
    book: tuple[str, str] | None = None,
) -> tuple[int, int]:
    """Rename a topic and/or book across every plan and log entry.

    A blank new name leaves that field alone. Returns the number of plan and
    log entries changed.
    """
    plans_updated = 0
    plans = store.get(STUDY_PLANS, email)
    if plans:
        for raw_day in plans.values():
            if not isinstance(raw_day, dict):
                continue
            for items in raw_day.values():
                for item in items if isinstance(items, list) else []:
                    if isinstance(item, dict) and _rename(item, topic, book):
                        plans_updated += 1
        if plans_updated:
            store.set(STUDY_PLANS, email, plans)

    logs_updated = 0
    logs = store.get(POMODORO_LOGS, email)
    if logs:
        for items in logs.values():
            for item in items if isinstance(items, list) else []:
                if isinstance(item, dict) and _rename(item, topic, book):
                    logs_updated += 1
        if logs_updated:
            store.set(POMODORO_LOGS, email, logs)
    logger.info(f"Bulk rename for {email}: {plans_updated} plans, {logs_updated} logs")
    return plans_updated, logs_updated
