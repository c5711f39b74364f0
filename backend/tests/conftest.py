import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tsureben.api import deps  # noqa: E402
from tsureben.core.security import create_access_token  # noqa: E402
from tsureben.db.base import Base  # noqa: E402
from tsureben.db.session import get_db  # noqa: E402
from tsureben.main import create_app  # noqa: E402
from tsureben.models import Document, User  # noqa: E402,F401
from tsureben.services.document_store import ChangeFeed, DocumentStore  # noqa: E402

TOKYO = ZoneInfo("Asia/Tokyo")


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_user(db: Session, email: str, name: str = "", **fields) -> User:
    defaults = {
        "grade": "2",
        "class_name": "3",
        "number": "1",
        "share_scope": "学年のみ",
        "teacher": False,
        "tureben_requests": [],
        "hidden_requests": [],
        "hidden_mates": [],
        "scores": [],
    }
    defaults.update(fields)
    user = User(
        email=email,
        name=name or email.split("@")[0],
        hashed_password="not-a-real-hash",
        **defaults,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(email: str, issued_at: datetime | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(email, issued_at=issued_at)}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def store(db, feed) -> DocumentStore:
    return DocumentStore(db, feed)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 5, 12, 9, 0, tzinfo=TOKYO))


@pytest.fixture
def app(engine, clock):
    app = create_app()
    testing_session = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def override_get_db():
        session = testing_session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_clock] = lambda: clock
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
