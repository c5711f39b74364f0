import re
from datetime import date as date_type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tsureben.core.errors import InvalidTimeRange

_CLOCK = re.compile(r"^(\d{2}):(\d{2})$")
MINUTES_PER_DAY = 24 * 60


def parse_clock(value: str) -> int:
    """Minutes since midnight for ``HH:MM``; ``24:00`` maps to 1440."""
    match = _CLOCK.match(value or "")
    if not match:
        raise ValueError(f"Invalid time format: {value!r}. Must be HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour == 24 and minute == 0:
        return MINUTES_PER_DAY
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time values: {value!r}")
    return hour * 60 + minute


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def check_time_range(start: str, end: str) -> None:
    if parse_clock(start) >= parse_clock(end):
        raise InvalidTimeRange(
            f"Start {start} must be earlier than end {end} on the same day"
        )


class StudyPlanEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    date: str = Field(..., description="Calendar day, YYYY-MM-DD")
    start: str = Field(..., description="Start time, HH:MM (24-hour)")
    end: str = Field(..., description="End time, HH:MM; 24:00 means midnight")
    subject: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    book: str = ""
    content: str = ""

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        date_type.fromisoformat(v)
        if len(v) != 10:
            raise ValueError("Date must be YYYY-MM-DD")
        return v

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        parse_clock(v)
        return v

    @model_validator(mode="after")
    def validate_range(self) -> "StudyPlanEntry":
        check_time_range(self.start, self.end)
        return self

    @property
    def start_minutes(self) -> int:
        return parse_clock(self.start)

    @property
    def end_minutes(self) -> int:
        return parse_clock(self.end)

    @property
    def hour_bucket(self) -> str:
        return self.start[:2]

    def to_document(self) -> dict:
        return self.model_dump()


class StudyPlanInput(BaseModel):
    """Form payload; the date comes from the URL."""

    start: str
    end: str
    subject: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    book: str = ""
    content: str = ""

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        parse_clock(v)
        return v

    @model_validator(mode="after")
    def validate_range(self) -> "StudyPlanInput":
        check_time_range(self.start, self.end)
        return self

    def for_date(self, day: str) -> StudyPlanEntry:
        return StudyPlanEntry(date=day, **self.model_dump())


class PlanSlot(BaseModel):
    hour: str
    entries: list[StudyPlanEntry]


class DayPlans(BaseModel):
    date: str
    buckets: dict[str, list[StudyPlanEntry]]
    slots: list[PlanSlot]
    masked_hours: list[str]


class CurrentPlan(BaseModel):
    date: str
    at: str
    plan: StudyPlanEntry | None
    upcoming: list[StudyPlanEntry]


class RenamePair(BaseModel):
    old: str = Field(..., min_length=1)
    new: str = ""


class BulkRenameRequest(BaseModel):
    topic: RenamePair | None = None
    book: RenamePair | None = None


class BulkRenameResult(BaseModel):
    plans_updated: int
    logs_updated: int
