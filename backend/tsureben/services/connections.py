"""Study-buddy (連れ勉仲間) connections.

Each user keeps one-directional lists; nothing is stored per pair. A pair is
mutual when both ``tureben_requests`` lists name the other. Hiding only
changes what the hiding user sees.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from tsureben.core.errors import ConfirmationRequired, UserNotFound
from tsureben.models.user import User

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


@dataclass
class Classified:
    mutual: list[User] = field(default_factory=list)
    sent: list[User] = field(default_factory=list)
    received: list[User] = field(default_factory=list)
    hidden_pending: list[User] = field(default_factory=list)
    hidden_mates: list[User] = field(default_factory=list)


def is_mutual(a: User, b: User) -> bool:
    return b.email in (a.tureben_requests or []) and a.email in (b.tureben_requests or [])


def _hidden(me: User) -> set[str]:
    return set(me.hidden_requests or []) | set(me.hidden_mates or [])


def classify(me: User, users: list[User]) -> Classified:
    result = Classified()
    hidden = _hidden(me)
    mine = set(me.tureben_requests or [])
    for user in users:
        if user.email == me.email:
            continue
        i_sent = user.email in mine
        they_sent = me.email in (user.tureben_requests or [])
        if user.email in hidden:
            if i_sent and they_sent:
                result.hidden_mates.append(user)
            elif they_sent:
                result.hidden_pending.append(user)
            continue
        if i_sent and they_sent:
            result.mutual.append(user)
        elif i_sent:
            result.sent.append(user)
        elif they_sent:
            result.received.append(user)
    return result


def get_user_by_email(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise UserNotFound(email)
    return user


def search(db: Session, me: User, query: str) -> list[User]:
    query = query.strip()
    if not query:
        return []
    return (
        db.query(User)
        .filter(User.name.contains(query), User.email != me.email)
        .order_by(User.id)
        .limit(SEARCH_LIMIT)
        .all()
    )


def send_requests(db: Session, me: User, emails: list[str]) -> list[str]:
    targets = [email for email in dict.fromkeys(emails) if email != me.email]
    for email in targets:
        get_user_by_email(db, email)
    current = list(me.tureben_requests or [])
    me.tureben_requests = current + [email for email in targets if email not in current]
    db.add(me)
    db.commit()
    db.refresh(me)
    logger.info(f"Buddy requests sent: {me.email} -> {targets}")
    return targets


def cancel_request(db: Session, me: User, email: str) -> None:
    me.tureben_requests = [e for e in (me.tureben_requests or []) if e != email]
    db.add(me)
    db.commit()
    db.refresh(me)


def accept(db: Session, me: User, email: str) -> User:
    other = get_user_by_email(db, email)
    if email not in (me.tureben_requests or []):
        me.tureben_requests = list(me.tureben_requests or []) + [email]
        db.add(me)
        db.commit()
        db.refresh(me)
    logger.info(f"Buddy request accepted: {me.email} <- {email}")
    return other


def hide(db: Session, me: User, email: str, confirm: bool = False) -> str:
    """Hide ``email`` from ``me``'s lists. Returns the list it went into."""
    if not confirm:
        raise ConfirmationRequired(f"Hiding {email} must be confirmed")
    other = get_user_by_email(db, email)
    if is_mutual(me, other):
        me.hidden_mates = list(dict.fromkeys(list(me.hidden_mates or []) + [email]))
        target = "hidden_mates"
    else:
        me.hidden_requests = list(dict.fromkeys(list(me.hidden_requests or []) + [email]))
        target = "hidden_requests"
    db.add(me)
    db.commit()
    db.refresh(me)
    return target


def unhide(db: Session, me: User, email: str) -> None:
    me.hidden_mates = [e for e in (me.hidden_mates or []) if e != email]
    me.hidden_requests = [e for e in (me.hidden_requests or []) if e != email]
    db.add(me)
    db.commit()
    db.refresh(me)
