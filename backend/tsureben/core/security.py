from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt
from passlib.context import CryptContext

from tsureben.core.config import get_settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password[:72], hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password[:72])


def _create_token(
    subject: str,
    expires_delta: timedelta,
    token_type: str,
    issued_at: datetime | None = None,
) -> str:
    settings = get_settings()
    issued = issued_at or datetime.now(timezone.utc)
    to_encode: Dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "iat": int(issued.timestamp()),
        "exp": int((issued + expires_delta).timestamp()),
    }
    return jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )


def create_access_token(subject: str, issued_at: datetime | None = None) -> str:
    settings = get_settings()
    return _create_token(
        subject,
        timedelta(minutes=settings.access_token_expire_minutes),
        token_type="access",
        issued_at=issued_at,
    )


def create_refresh_token(subject: str, issued_at: datetime | None = None) -> str:
    settings = get_settings()
    return _create_token(
        subject,
        timedelta(minutes=settings.refresh_token_expire_minutes),
        token_type="refresh",
        issued_at=issued_at,
    )


def decode_token(token: str, verify_exp: bool = True) -> Dict[str, Any]:
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": verify_exp},
        )
    except JWTError as exc:  # pragma: no cover - captured and re-raised upstream
        raise ValueError("Invalid token") from exc


def token_expired(claims: Dict[str, Any], now: datetime) -> bool:
    return int(claims.get("exp", 0)) <= int(now.timestamp())


def is_teacher_email(email: str) -> bool:
    """Staff accounts use a 1-4 digit local part (e.g. ``0123@school.ed.jp``)."""
    local = email.split("@", 1)[0]
    return local.isdigit() and 1 <= len(local) <= 4
