"""
Pydantic schemas for the companion backend HTTP API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from companion_backend.db import NewCompanion


class CreateCompanionPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=120)
    subject: str = Field(..., min_length=1, max_length=64)
    topic: str = Field(..., min_length=1, max_length=500)
    voice: str = Field(default="", max_length=64)
    style: str = Field(default="", max_length=64)
    duration: int = Field(default=15, ge=1, le=240)

    def to_new_companion(self) -> NewCompanion:
        return NewCompanion(
            name=self.name,
            subject=self.subject,
            topic=self.topic,
            voice=self.voice,
            style=self.style,
            duration=self.duration,
        )


class Companion(BaseModel):
    id: str
    name: str
    subject: str
    topic: str
    author: str
    voice: str = ""
    style: str = ""
    duration: int
    created_at: float


class CompanionCardModel(Companion):
    color: str


class SessionPayload(BaseModel):
    companion_id: str = Field(..., min_length=1, max_length=64)


class BookmarkPayload(BaseModel):
    companion_id: str = Field(..., min_length=1, max_length=64)
    path: str = Field(default="/", max_length=512)


class NotificationModel(BaseModel):
    level: str
    message: str


class HomePageResponse(BaseModel):
    popular: list[CompanionCardModel]
    recent_sessions: list[CompanionCardModel]
    notifications: list[NotificationModel]


class LibraryPageResponse(BaseModel):
    companions: list[CompanionCardModel]
    subject: Optional[str] = None
    topic: Optional[str] = None
    page: int
    notifications: list[NotificationModel]


class JourneyPageResponse(BaseModel):
    companions: list[CompanionCardModel]
    sessions: list[CompanionCardModel]
    bookmarks: list[CompanionCardModel]
    notifications: list[NotificationModel]


class HealthResponse(BaseModel):
    status: Literal["ok"]
