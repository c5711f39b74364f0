from datetime import datetime, time

import pytest
from pydantic import ValidationError

from tsureben.schemas.plan import StudyPlanEntry
from tsureben.services.schedule_index import ScheduleIndex, overlaps

DAY = "2025-05-12"


def _entry(start: str, end: str, topic: str = "長文読解", subject: str = "英語", **extra) -> StudyPlanEntry:
    return StudyPlanEntry(date=DAY, start=start, end=end, subject=subject, topic=topic, **extra)


def test_find_covering_uses_half_open_interval():
    english = _entry("09:00", "10:00")
    index = ScheduleIndex([english])

    assert index.find_covering("08:59") is None
    assert index.find_covering("09:00") == english
    assert index.find_covering(time(9, 59, 59)) == english
    assert index.find_covering("10:00") is None


def test_find_covering_accepts_datetimes_and_ignores_other_days():
    english = _entry("09:00", "10:00")
    index = ScheduleIndex([english], day=DAY)

    assert index.find_covering(datetime(2025, 5, 12, 9, 30)) == english
    assert index.find_covering("2025-05-12T09:30") == english
    assert index.find_covering(datetime(2025, 5, 13, 9, 30)) is None


def test_overlapping_entries_resolve_by_start_end_topic_then_position():
    late = _entry("09:30", "10:30", topic="文法")
    long = _entry("09:00", "11:00", topic="単語")
    short = _entry("09:00", "09:45", topic="和訳")
    twin_b = _entry("09:00", "09:45", topic="和訳", book="b")

    for order in ([late, long, short, twin_b], [twin_b, short, long, late]):
        index = ScheduleIndex(order)
        assert index.find_covering("09:40").topic == "和訳"

    index = ScheduleIndex([late, long, short, twin_b])
    assert index.find_covering("09:40") == short
    assert index.find_covering("09:50") == long
    assert [e.topic for e in index.covering("09:40")] == ["和訳", "和訳", "単語", "文法"]


def test_entry_ending_at_midnight_covers_last_minute():
    night = _entry("23:00", "24:00", topic="復習")
    index = ScheduleIndex([night])

    assert index.find_covering("23:59") == night
    assert night.end_minutes == 24 * 60


def test_upcoming_lists_entries_not_started_yet():
    first = _entry("09:00", "10:00")
    second = _entry("13:00", "14:00", topic="数列", subject="数学")
    index = ScheduleIndex([second, first], day=DAY)

    assert index.upcoming("09:30") == [second]
    assert index.upcoming("2025-05-11T20:00") == [first, second]
    assert index.upcoming("2025-05-13T08:00") == []


def test_masked_hours_follow_duration():
    index = ScheduleIndex(
        [
            _entry("09:00", "11:30"),
            _entry("13:00", "14:00", topic="数列"),
            _entry("22:30", "24:00", topic="復習"),
        ]
    )

    assert index.masked_hours() == {"10", "11", "23"}


def test_slots_fold_entries_into_masking_row():
    master = _entry("09:00", "11:00", topic="長文")
    inside = _entry("10:15", "10:45", topic="単語")
    overlap_same_hour = _entry("09:30", "09:50", topic="文法")
    later = _entry("13:00", "14:00", topic="数列", subject="数学")
    index = ScheduleIndex([later, inside, overlap_same_hour, master])

    slots = {slot.hour: slot.entries for slot in index.slots()}

    assert "10" not in slots
    assert slots["09"] == [master, overlap_same_hour, inside]
    assert slots["13"] == [later]
    assert slots["08"] == []
    rendered = [entry for entries in slots.values() for entry in entries]
    assert sorted(rendered, key=id) == sorted(index.entries, key=id)


def test_overlaps_is_false_for_touching_entries():
    assert not overlaps(_entry("09:00", "10:00"), _entry("10:00", "11:00"))
    assert overlaps(_entry("09:00", "10:01"), _entry("10:00", "11:00"))


@pytest.mark.parametrize(
    ("start", "end"),
    [("10:00", "09:00"), ("09:00", "09:00"), ("9:00", "10:00"), ("23:00", "24:30")],
)
def test_invalid_entries_are_rejected(start, end):
    with pytest.raises(ValidationError):
        _entry(start, end)


def test_overlaps_with_lists_conflicting_entries_in_order():
    morning = _entry("09:00", "10:00")
    late_morning = _entry("09:45", "10:30", topic="文法")
    noon = _entry("12:00", "13:00", topic="数列")
    index = ScheduleIndex([noon, late_morning, morning])

    assert index.overlaps_with(_entry("09:30", "10:15", topic="単語")) == [morning, late_morning]
    assert index.overlaps_with(_entry("10:30", "12:00", topic="単語")) == []


def test_overlaps_with_includes_entry_itself_and_is_symmetric():
    entries = [
        _entry("09:00", "10:00"),
        _entry("09:45", "10:30", topic="文法"),
        _entry("10:00", "11:00", topic="単語"),
        _entry("12:00", "13:00", topic="数列"),
    ]
    index = ScheduleIndex(entries)

    for entry in entries:
        assert entry in index.overlaps_with(entry)
    for a in entries:
        for b in entries:
            assert (b in index.overlaps_with(a)) == (a in index.overlaps_with(b))


def test_string_instants_may_carry_seconds():
    english = _entry("09:00", "10:00")
    index = ScheduleIndex([english])

    assert index.find_covering("09:59:30") == english
    assert index.find_covering("10:00:00") is None
    assert index.upcoming("08:59:59") == [english]
