from enum import Enum as PyEnum

from pydantic import BaseModel, ConfigDict, Field


class ShareScope(str, PyEnum):
    PUBLIC = "すべて公開"
    GRADE = "学年のみ"
    CLASS = "組のみ"
    BUDDIES = "連れ勉仲間のみ"


class ActiveSessionAnnouncement(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str = ""
    subject: str = ""
    topic: str = ""
    book: str = ""
    content: str = ""
    start_time: str = Field(default="", alias="startTime")
    name: str = ""
    grade: str = ""
    class_name: str = Field(default="", alias="class")
    # Kept as raw text: unknown scopes must fail closed, not fail validation.
    share_scope: str | None = Field(default=None, alias="shareScope")
    tureben_requests: list[str] = Field(default_factory=list, alias="turebenRequests")
    hidden_requests: list[str] = Field(default_factory=list, alias="hiddenRequests")
    hidden_mates: list[str] = Field(default_factory=list, alias="hiddenMates")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"email"})


class Viewer(BaseModel):
    email: str
    is_teacher: bool = False
    grade: str = ""
    class_name: str = ""


class PresenceItem(BaseModel):
    email: str
    name: str
    subject: str
    topic: str
    book: str
    content: str
    start_time: str


class PresenceSnapshot(BaseModel):
    users: list[PresenceItem]
