from datetime import date

from conftest import make_user
from tsureben.schemas.pomodoro import PomodoroLogEntry
from tsureben.services import analytics
from tsureben.services.document_store import POMODORO_LOGS, SUMMARIES

TODAY = date(2025, 5, 14)


def _log(day: str, minutes: int | None, topic: str = "長文読解", subject: str = "英語") -> PomodoroLogEntry:
    return PomodoroLogEntry(date=day, startTime="09:00", duration=minutes, subject=subject, topic=topic)


def test_today_breakdown_skips_in_progress_entries():
    logs = {
        "2025-05-14": [
            _log("2025-05-14", 25),
            _log("2025-05-14", 20),
            _log("2025-05-14", 30, topic="微分", subject="数学"),
            _log("2025-05-14", None, topic="微分", subject="数学"),
        ]
    }

    result = analytics.today_breakdown(logs, TODAY)

    assert result.total_minutes == 75
    assert [(t.name, t.subject, t.value) for t in result.topics] == [
        ("長文読解", "英語", 45),
        ("微分", "数学", 30),
    ]


def test_daily_totals_cover_trailing_window_oldest_first():
    logs = {"2025-05-14": [_log("2025-05-14", 25)], "2025-05-12": [_log("2025-05-12", 40)]}

    totals = analytics.daily_totals(logs, TODAY, 3)

    assert [(t.date, t.label, t.minutes) for t in totals] == [
        ("2025-05-12", "5/12", 40),
        ("2025-05-13", "5/13", 0),
        ("2025-05-14", "5/14", 25),
    ]


def test_stacked_week_starts_on_sunday():
    logs = {"2025-05-11": [_log("2025-05-11", 30, topic="微分", subject="数学")]}

    chart = analytics.stacked_by_topic(logs, TODAY, "week")

    assert [d.date for d in chart.days][0] == "2025-05-11"
    assert len(chart.days) == 7
    assert chart.days[0].topics == {"微分": 30}
    assert chart.topic_subjects == {"微分": "数学"}


def test_stacked_month_spans_calendar_month():
    chart = analytics.stacked_by_topic({}, date(2024, 2, 10), "month")
    assert len(chart.days) == 29
    assert chart.days[-1].date == "2024-02-29"


def test_rollup_windows_and_score_preference(db, store):
    make_user(
        db,
        "taro@tsureben.jp",
        scores=[
            {"testName": "4月河合塾全統共テ模試", "value": 61.5},
            {"testName": "5月河合記述模試", "value": 58.0},
        ],
    )
    make_user(db, "hanako@tsureben.jp", scores=[{"testName": "4月河合塾全統共テ模試", "value": 70.0}])
    make_user(db, "jiro@tsureben.jp")
    store.set(
        POMODORO_LOGS,
        "taro@tsureben.jp",
        {
            "2025-05-13": [{"startTime": "20:00", "duration": 50}],
            "2025-05-10": [{"startTime": "20:00", "duration": 30}, {"startTime": "21:00", "duration": None}],
            "2025-04-20": [{"startTime": "20:00", "duration": 100}],
        },
    )
    store.set(POMODORO_LOGS, "hanako@tsureben.jp", {"2025-04-01": [{"startTime": "08:00", "duration": 60}]})
    store.set(POMODORO_LOGS, "jiro@tsureben.jp", {"2025-05-13": [{"startTime": "08:00", "duration": 60}]})

    counts = analytics.run_rollup(
        db, store, TODAY, ["5月河合記述模試", "4月河合塾全統共テ模試"]
    )

    assert counts == {"yesterday": 1, "week": 1, "month": 1}
    assert store.get(SUMMARIES, "yesterday") == {"taro@tsureben.jp": {"totalMinutes": 50, "score": 58.0}}
    assert store.get(SUMMARIES, "week")["taro@tsureben.jp"]["totalMinutes"] == 80
    assert store.get(SUMMARIES, "month")["taro@tsureben.jp"]["totalMinutes"] == 180

    summary = analytics.load_summary(store, "week")
    assert summary.rows["taro@tsureben.jp"].total_minutes == 80
