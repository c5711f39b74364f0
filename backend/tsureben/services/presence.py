from __future__ import annotations

import logging
from typing import Iterable

from pydantic import ValidationError

from tsureben.models.user import User
from tsureben.schemas.pomodoro import PomodoroLogEntry
from tsureben.schemas.presence import (
    ActiveSessionAnnouncement,
    PresenceItem,
    ShareScope,
    Viewer,
)
from tsureben.services.document_store import ACTIVE_USERS, DocumentStore

logger = logging.getLogger(__name__)


def _visible_to_student(viewer: Viewer, announcement: ActiveSessionAnnouncement) -> bool:
    scope = announcement.share_scope
    if scope == ShareScope.PUBLIC.value:
        return True
    if scope == ShareScope.GRADE.value:
        return announcement.grade == viewer.grade
    if scope == ShareScope.CLASS.value:
        return (
            announcement.grade == viewer.grade
            and announcement.class_name == viewer.class_name
        )
    if scope == ShareScope.BUDDIES.value:
        return (
            viewer.email in announcement.tureben_requests
            and viewer.email not in announcement.hidden_mates
        )
    # unknown or missing scope
    return False


def filter_announcements(
    viewer: Viewer,
    announcements: Iterable[ActiveSessionAnnouncement],
    grade: str | None = None,
    class_name: str | None = None,
) -> list[ActiveSessionAnnouncement]:
    """Announcements ``viewer`` may see, in their original order.

    ``grade``/``class_name`` narrow a teacher's view after the visibility pass
    and are ignored for students.
    """
    visible = []
    for announcement in announcements:
        if announcement.email == viewer.email:
            continue
        if viewer.is_teacher:
            if grade and announcement.grade != grade:
                continue
            if class_name and announcement.class_name != class_name:
                continue
            visible.append(announcement)
        elif _visible_to_student(viewer, announcement):
            visible.append(announcement)
    return visible


def viewer_for(user: User) -> Viewer:
    return Viewer(
        email=user.email,
        is_teacher=bool(user.teacher),
        grade=user.grade or "",
        class_name=user.class_name or "",
    )


def announcement_for(user: User, log_entry: PomodoroLogEntry) -> ActiveSessionAnnouncement:
    """Announcement carrying a snapshot of the announcer's profile."""
    return ActiveSessionAnnouncement(
        email=user.email,
        subject=log_entry.subject,
        topic=log_entry.topic,
        book=log_entry.book,
        content=log_entry.content,
        start_time=log_entry.start_time,
        name=user.name or user.email.split("@")[0],
        grade=user.grade or "",
        class_name=user.class_name or "",
        share_scope=user.share_scope,
        tureben_requests=list(user.tureben_requests or []),
        hidden_requests=list(user.hidden_requests or []),
        hidden_mates=list(user.hidden_mates or []),
    )


def load_announcements(store: DocumentStore) -> list[ActiveSessionAnnouncement]:
    announcements = []
    for email, data in store.list(ACTIVE_USERS).items():
        try:
            announcements.append(ActiveSessionAnnouncement.model_validate({**data, "email": email}))
        except ValidationError as exc:
            logger.warning(f"Skipping malformed announcement for {email}: {exc.error_count()} errors")
    return announcements


def to_items(announcements: Iterable[ActiveSessionAnnouncement]) -> list[PresenceItem]:
    return [
        PresenceItem(
            email=a.email,
            name=a.name or a.email.split("@")[0],
            subject=a.subject or "－",
            topic=a.topic or "－",
            book=a.book or "－",
            content=a.content or "－",
            start_time=a.start_time,
        )
        for a in announcements
    ]


def visible_presence(
    store: DocumentStore,
    viewer: Viewer,
    grade: str | None = None,
    class_name: str | None = None,
) -> list[PresenceItem]:
    return to_items(filter_announcements(viewer, load_announcements(store), grade, class_name))
