from datetime import datetime

from conftest import TOKYO, make_user
from tsureben.schemas.plan import StudyPlanEntry
from tsureben.schemas.pomodoro import TimerState
from tsureben.services.document_store import POMODORO_LOGS, TIMER_ANCHORS
from tsureben.services.pomodoro import StoreSessionSink, load_anchor
from tsureben.services.session_timer import SessionTimer

EMAIL = "taro@tsureben.jp"
DAY = "2025-05-12"
NOW = datetime(2025, 5, 12, 9, 0, tzinfo=TOKYO)
PLAN = StudyPlanEntry(date=DAY, start="09:00", end="10:00", subject="英語", topic="長文読解")


def test_racing_starts_open_one_session(db, store):
    user = make_user(db, EMAIL)
    # both requests read the store before either wrote its anchor
    first = SessionTimer.restore(load_anchor(store, EMAIL), StoreSessionSink(store, user))
    second = SessionTimer.restore(load_anchor(store, EMAIL), StoreSessionSink(store, user))

    assert first.start(PLAN, NOW) is True
    assert second.start(PLAN, NOW) is False

    assert second.state == TimerState.IDLE
    assert len(store.get(POMODORO_LOGS, EMAIL)[DAY]) == 1
    assert load_anchor(store, EMAIL).state == TimerState.RUNNING


def test_start_replaces_leftover_finished_anchor(db, store):
    user = make_user(db, EMAIL)
    store.set(
        TIMER_ANCHORS,
        EMAIL,
        {"state": "finished", "sessionDate": DAY, "startTime": "2025-05-11T21:00:00+09:00"},
    )
    assert load_anchor(store, EMAIL) is None

    timer = SessionTimer.restore(load_anchor(store, EMAIL), StoreSessionSink(store, user))

    assert timer.start(PLAN, NOW) is True
    assert load_anchor(store, EMAIL).state == TimerState.RUNNING
    assert store.get(POMODORO_LOGS, EMAIL)[DAY][0]["startTime"] == "09:00"
