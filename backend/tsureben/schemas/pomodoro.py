from datetime import datetime
from enum import Enum as PyEnum

from pydantic import BaseModel, ConfigDict, Field

from tsureben.schemas.plan import StudyPlanEntry


class TimerState(str, PyEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class PomodoroLogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: str
    start_time: str = Field(..., alias="startTime")
    duration: int | None = None
    subject: str = "その他"
    topic: str = "ポモドーロ"
    book: str = ""
    content: str = ""

    @property
    def in_progress(self) -> bool:
        return self.duration is None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class TimerAnchor(BaseModel):
    """Persisted timer state; lets a reloaded client resolve ``finish``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    state: TimerState = TimerState.IDLE
    session_date: str | None = Field(default=None, alias="sessionDate")
    initial_start_time: datetime | None = Field(default=None, alias="initialStartTime")
    start_time: datetime | None = Field(default=None, alias="startTime")
    pause_elapsed_seconds: float = Field(default=0.0, alias="pauseElapsedSeconds")
    plan: StudyPlanEntry | None = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class TimerStatus(BaseModel):
    state: TimerState
    elapsed_seconds: int
    unsaved: bool
    session_date: str | None = None
    initial_start_time: datetime | None = None
    plan: StudyPlanEntry | None = None
    orphaned_entries: list[PomodoroLogEntry] = Field(default_factory=list)


class FinishRequest(BaseModel):
    manual_minutes: int | str | None = None
    refresh_token: str | None = None


class FinishResult(BaseModel):
    saved: bool
    minutes: int | None = None
    manual: bool = False
    reason: str | None = None
