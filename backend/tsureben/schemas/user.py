from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from tsureben.schemas.presence import ShareScope

Grade = Literal["", "中1", "中2", "中3", "高1", "高2", "高3"]


class Score(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    test_name: str = Field(..., alias="testName")
    value: float


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    name: str
    grade: str
    class_name: str
    number: str
    share_scope: str
    teacher: bool
    tureben_requests: list[str]
    hidden_requests: list[str]
    hidden_mates: list[str]
    scores: list[Score]
    created_at: datetime
    updated_at: datetime


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    grade: Grade | None = None
    class_name: str | None = Field(default=None, pattern=r"^[1-9]?$")
    number: str | None = Field(default=None, pattern=r"^([1-9]|[1-3][0-9]|4[0-5])?$")
    share_scope: ShareScope | None = None
    scores: list[Score] | None = None


class StudentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    name: str
    grade: str
    class_name: str
    number: str


class MateUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    name: str
    grade: str
    class_name: str


class MateLists(BaseModel):
    mutual: list[MateUser]
    sent: list[MateUser]
    received: list[MateUser]
    hidden_pending: list[MateUser]
    hidden_mates: list[MateUser]


class MateRequest(BaseModel):
    emails: list[str] = Field(..., min_length=1)
