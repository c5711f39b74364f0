from datetime import datetime, timedelta
from typing import Any, Callable
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tsureben.core.config import get_settings
from tsureben.core.security import decode_token
from tsureben.db.session import get_db
from tsureben.models.user import User
from tsureben.services.document_store import ChangeFeed, DocumentStore

bearer_scheme = HTTPBearer(auto_error=False)

Clock = Callable[[], datetime]


def get_clock() -> Clock:
    tz = ZoneInfo(get_settings().timezone)
    return lambda: datetime.now(tz)


def get_feed(request: Request) -> ChangeFeed:
    return request.app.state.feed


def get_store(
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
) -> DocumentStore:
    return DocumentStore(db, feed)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_claims(db: Session, claims: dict[str, Any]) -> User:
    if claims.get("type") != "access":
        raise _unauthorized("Invalid access token")
    user = db.query(User).filter(User.email == claims.get("sub")).first()
    if not user:
        raise _unauthorized("User not found")
    return user


def user_from_token(db: Session, token: str) -> User:
    try:
        claims = decode_token(token)
    except ValueError as exc:
        raise _unauthorized("Could not validate credentials") from exc
    return user_from_claims(db, claims)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return user_from_token(db, credentials.credentials)


def get_session_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    """Claims of a correctly signed access token, expired or not.

    Tokens past ``reauth_grace_minutes`` are refused outright; younger expired
    tokens are left for the finish flow to re-authenticate.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = decode_token(credentials.credentials, verify_exp=False)
    except ValueError as exc:
        raise _unauthorized("Could not validate credentials") from exc
    grace = timedelta(minutes=get_settings().reauth_grace_minutes)
    if int(claims.get("exp", 0)) + grace.total_seconds() <= clock().timestamp():
        raise _unauthorized("Session expired")
    return claims


def get_session_user(
    claims: dict[str, Any] = Depends(get_session_claims),
    db: Session = Depends(get_db),
) -> User:
    return user_from_claims(db, claims)


def require_teacher(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.teacher:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Teachers only"
        )
    return current_user
