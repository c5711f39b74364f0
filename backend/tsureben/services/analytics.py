from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Literal

from pydantic import ValidationError
from sqlalchemy.orm import Session

from tsureben.models.user import User
from tsureben.schemas.analytics import (
    DailyTotal,
    StackedChart,
    StackedDay,
    SummaryRow,
    SummaryWindow,
    TodayBreakdown,
    TopicMinutes,
)
from tsureben.schemas.pomodoro import PomodoroLogEntry
from tsureben.services.document_store import POMODORO_LOGS, SUMMARIES, DocumentStore
from tsureben.services.pomodoro import parse_logs

logger = logging.getLogger(__name__)

SUMMARY_WINDOWS = {"yesterday": 1, "week": 7, "month": 30}

Logs = dict[str, list[PomodoroLogEntry]]


def _label(day: date) -> str:
    return f"{day.month}/{day.day}"


def _finished(entries: Iterable[PomodoroLogEntry]) -> list[PomodoroLogEntry]:
    # in-progress entries have no duration yet and are left out, not zeroed
    return [entry for entry in entries if entry.duration is not None]


def total_minutes(entries: Iterable[PomodoroLogEntry]) -> int:
    return sum(entry.duration for entry in _finished(entries))


def today_breakdown(logs: Logs, today: date) -> TodayBreakdown:
    key = today.isoformat()
    topics: dict[str, TopicMinutes] = {}
    for entry in _finished(logs.get(key, [])):
        name = entry.topic or "未分類"
        if name not in topics:
            topics[name] = TopicMinutes(name=name, subject=entry.subject or "その他", value=0)
        topics[name].value += entry.duration
    return TodayBreakdown(
        date=key,
        total_minutes=sum(item.value for item in topics.values()),
        topics=list(topics.values()),
    )


def daily_totals(logs: Logs, today: date, days: int) -> list[DailyTotal]:
    result = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        result.append(
            DailyTotal(
                date=day.isoformat(),
                label=_label(day),
                minutes=total_minutes(logs.get(day.isoformat(), [])),
            )
        )
    return result


def stacked_by_topic(logs: Logs, anchor: date, view: Literal["week", "month"]) -> StackedChart:
    """Minutes per topic per day for the week (from Sunday) or month of ``anchor``."""
    if view == "week":
        start = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
        length = 7
    else:
        start = anchor.replace(day=1)
        length = calendar.monthrange(anchor.year, anchor.month)[1]

    days = []
    topic_subjects: dict[str, str] = {}
    for offset in range(length):
        day = start + timedelta(days=offset)
        topics: dict[str, int] = defaultdict(int)
        for entry in _finished(logs.get(day.isoformat(), [])):
            topic = entry.topic or "未分類"
            topic_subjects[topic] = entry.subject or "その他"
            topics[topic] += entry.duration
        days.append(StackedDay(date=day.isoformat(), label=_label(day), topics=dict(topics)))
    return StackedChart(view=view, days=days, topic_subjects=topic_subjects)


def score_for(user: User, tests: list[str]) -> float | None:
    """Score from the first listed test the user has a value for."""
    by_name = {
        item.get("testName"): item.get("value")
        for item in (user.scores or [])
        if isinstance(item, dict)
    }
    for name in tests:
        if by_name.get(name):
            return by_name[name]
    return None


def rollup(
    users: Iterable[User],
    logs_by_email: dict[str, Logs],
    today: date,
    score_tests: list[str],
) -> dict[str, dict[str, dict]]:
    """Per-window ``{email: {totalMinutes, score}}`` for users with a score."""
    results: dict[str, dict[str, dict]] = {window: {} for window in SUMMARY_WINDOWS}
    cutoffs = {
        window: (today - timedelta(days=span)).isoformat()
        for window, span in SUMMARY_WINDOWS.items()
    }
    for user in users:
        score = score_for(user, score_tests)
        if not score:
            continue
        totals = dict.fromkeys(SUMMARY_WINDOWS, 0)
        for day, entries in logs_by_email.get(user.email, {}).items():
            if day > today.isoformat():
                continue
            minutes = total_minutes(entries)
            for window, cutoff in cutoffs.items():
                if day >= cutoff:
                    totals[window] += minutes
        for window, minutes in totals.items():
            if minutes > 0:
                results[window][user.email] = SummaryRow(
                    total_minutes=minutes, score=score
                ).model_dump(by_alias=True)
    return results


def run_rollup(db: Session, store: DocumentStore, today: date, score_tests: list[str]) -> dict[str, int]:
    users = db.query(User).all()
    logs_by_email = {
        email: parse_logs(document, email)
        for email, document in store.list(POMODORO_LOGS).items()
    }
    results = rollup(users, logs_by_email, today, score_tests)
    for window, rows in results.items():
        store.set(SUMMARIES, window, rows)
    counts = {window: len(rows) for window, rows in results.items()}
    logger.info(f"Study summaries written for {today}: {counts}")
    return counts


def load_summary(store: DocumentStore, window: str) -> SummaryWindow:
    rows = {}
    for email, row in (store.get(SUMMARIES, window) or {}).items():
        try:
            rows[email] = SummaryRow.model_validate(row)
        except ValidationError:
            logger.warning(f"Skipping malformed summary row {window}/{email}")
    return SummaryWindow(window=window, rows=rows)
