"""
Page-level composition for the catalog front end.

Pages never fail to build. When a fetch fails, the page carries a transient
error notification and an empty section in its place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, TypeVar

from companion_backend import actions
from companion_backend.db import CompanionRecord, DbClient
from companion_backend.identity import Caller
from companion_backend.results import ActionResult, Failure
from companion_backend.subjects import get_subject_color

T = TypeVar("T")


@dataclass(frozen=True)
class Notification:
    level: Literal["error", "info"]
    message: str


@dataclass(frozen=True)
class CompanionCard:
    companion: CompanionRecord
    color: str

    def as_dict(self) -> dict:
        return {**self.companion.as_dict(), "color": self.color}


@dataclass
class PageContext:
    notifications: list[Notification] = field(default_factory=list)

    def fallback(self, result: ActionResult[T], default: T, notice: str) -> T:
        """Return the result's data, or ``default`` plus an error notification."""
        if isinstance(result, Failure):
            self.notifications.append(
                Notification(level="error", message=result.message or notice)
            )
            return default
        return result.data


def to_cards(companions: list[CompanionRecord]) -> list[CompanionCard]:
    return [
        CompanionCard(companion=companion, color=get_subject_color(companion.subject))
        for companion in companions
    ]


@dataclass
class HomePage:
    popular: list[CompanionCard]
    recent_sessions: list[CompanionCard]
    notifications: list[Notification]


@dataclass
class LibraryPage:
    companions: list[CompanionCard]
    subject: str | None
    topic: str | None
    page: int
    notifications: list[Notification]


@dataclass
class JourneyPage:
    companions: list[CompanionCard]
    sessions: list[CompanionCard]
    bookmarks: list[CompanionCard]
    notifications: list[Notification]


def build_home_page(
    db: DbClient, popular_limit: int = 3, recent_limit: int = 10
) -> HomePage:
    ctx = PageContext()
    popular = ctx.fallback(
        actions.get_all_companions(db, limit=popular_limit),
        [],
        "Failed to load companions",
    )
    recent = ctx.fallback(
        actions.get_recent_sessions(db, recent_limit),
        [],
        "Failed to load recent sessions",
    )
    return HomePage(
        popular=to_cards(popular),
        recent_sessions=to_cards(recent),
        notifications=ctx.notifications,
    )


def build_library_page(
    db: DbClient,
    *,
    subject: str | None = None,
    topic: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> LibraryPage:
    ctx = PageContext()
    companions = ctx.fallback(
        actions.get_all_companions(
            db, limit=limit, page=page, subject=subject, topic=topic
        ),
        [],
        "Failed to load companions",
    )
    return LibraryPage(
        companions=to_cards(companions),
        subject=subject,
        topic=topic,
        page=page,
        notifications=ctx.notifications,
    )


def build_journey_page(
    db: DbClient, caller: Caller | None, session_limit: int = 10
) -> JourneyPage:
    ctx = PageContext()
    companions = ctx.fallback(
        actions.get_user_companions(db, caller), [], "Failed to load your companions"
    )
    sessions = ctx.fallback(
        actions.get_user_sessions(db, caller, session_limit),
        [],
        "Failed to load your sessions",
    )
    bookmarks = ctx.fallback(
        actions.get_bookmarked_companions(db, caller), [], "Failed to load bookmarks"
    )
    return JourneyPage(
        companions=to_cards(companions),
        sessions=to_cards(sessions),
        bookmarks=to_cards(bookmarks),
        notifications=ctx.notifications,
    )
