from pydantic import BaseModel, ConfigDict, Field


class TopicMinutes(BaseModel):
    name: str
    subject: str
    value: int


class TodayBreakdown(BaseModel):
    date: str
    total_minutes: int
    topics: list[TopicMinutes]


class DailyTotal(BaseModel):
    date: str
    label: str
    minutes: int


class StackedDay(BaseModel):
    date: str
    label: str
    topics: dict[str, int]


class StackedChart(BaseModel):
    view: str
    days: list[StackedDay]
    topic_subjects: dict[str, str]


class SummaryRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_minutes: int = Field(..., alias="totalMinutes")
    score: float


class SummaryWindow(BaseModel):
    window: str
    rows: dict[str, SummaryRow]
