"""
Store abstraction for the companion catalog: a SQLAlchemy client and an
in-memory implementation for development and tests.

Store calls never raise for anticipated failures. They return ``StoreOk`` or
``StoreFailure`` with one of a small closed set of kinds.
"""

from __future__ import annotations

import itertools
import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Dict, Generic, Optional, Protocol, TypeVar, Union

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    or_,
    select,
)
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

T = TypeVar("T")

# Postgres SQLSTATE for unique_violation.
UNIQUE_VIOLATION = "23505"


class StoreErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class StoreOk(Generic[T]):
    value: T


@dataclass(frozen=True)
class StoreFailure:
    kind: StoreErrorKind
    detail: str = ""


StoreResult = Union[StoreOk[T], StoreFailure]


@dataclass
class NewCompanion:
    name: str
    subject: str
    topic: str
    voice: str = ""
    style: str = ""
    duration: int = 15


@dataclass
class CompanionRecord:
    id: str
    name: str
    subject: str
    topic: str
    author: str
    voice: str = ""
    style: str = ""
    duration: int = 15
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "subject": self.subject,
            "topic": self.topic,
            "author": self.author,
            "voice": self.voice,
            "style": self.style,
            "duration": self.duration,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class CompanionQuery:
    """Catalog listing parameters. ``page`` is 1-indexed."""

    limit: int = 10
    page: int = 1
    subject: Optional[str] = None
    topic: Optional[str] = None

    def __post_init__(self):
        if self.limit < 1 or self.page < 1:
            raise ValueError(
                f"page and limit must be >= 1 (page={self.page}, limit={self.limit})"
            )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def row_range(self) -> tuple[int, int]:
        """Inclusive (first, last) row indexes covered by this page."""
        return self.offset, self.page * self.limit - 1

    def matches(self, companion: CompanionRecord) -> bool:
        if self.subject and not _icontains(companion.subject, self.subject):
            return False
        if self.topic and not (
            _icontains(companion.topic, self.topic)
            or _icontains(companion.name, self.topic)
        ):
            return False
        return True


def _icontains(value: str | None, needle: str) -> bool:
    return needle.lower() in (value or "").lower()


class DbClient(Protocol):
    """Interface for the companion store."""

    def insert_companion(
        self, fields: NewCompanion, author: str
    ) -> StoreResult[CompanionRecord]:
        ...

    def select_companions(
        self, query: CompanionQuery
    ) -> StoreResult[list[CompanionRecord]]:
        ...

    def get_companion(self, companion_id: str) -> StoreResult[CompanionRecord]:
        ...

    def select_companions_by_author(
        self, author: str
    ) -> StoreResult[list[CompanionRecord]]:
        ...

    def count_companions_by_author(self, author: str) -> StoreResult[int]:
        ...

    def insert_session(self, user_id: str, companion_id: str) -> StoreResult[None]:
        ...

    def select_session_companions(
        self, user_id: str | None, limit: int
    ) -> StoreResult[list[Optional[CompanionRecord]]]:
        ...

    def insert_bookmark(self, user_id: str, companion_id: str) -> StoreResult[None]:
        ...

    def delete_bookmark(self, user_id: str, companion_id: str) -> StoreResult[None]:
        ...

    def select_bookmark_companions(
        self, user_id: str
    ) -> StoreResult[list[Optional[CompanionRecord]]]:
        ...


@dataclass
class SessionEntry:
    id: int
    user_id: str
    companion_id: str
    created_at: float


class InMemoryDbClient:
    """Simple in-memory store for development and tests."""

    def __init__(self, max_calls: int = 1000):
        self.companions: Dict[str, CompanionRecord] = {}
        self.sessions: list[SessionEntry] = []
        self.bookmarks: Dict[tuple[str, str], float] = {}
        self.calls: list[str] = []
        self.max_calls = max_calls
        self._session_ids = itertools.count(1)
        self._fail_next: Optional[StoreFailure] = None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.companions.clear()
        self.sessions.clear()
        self.bookmarks.clear()
        self.calls.clear()
        self._fail_next = None

    def fail_next(
        self, kind: StoreErrorKind = StoreErrorKind.TRANSPORT, detail: str = ""
    ) -> None:
        """Make the next store call return a failure of the given kind."""
        self._fail_next = StoreFailure(kind, detail or f"simulated {kind}")

    def _begin(self, operation: str) -> Optional[StoreFailure]:
        self.calls.append(operation)
        # Only the most recent operations are kept.
        if len(self.calls) > self.max_calls:
            del self.calls[: len(self.calls) - self.max_calls]
        failure, self._fail_next = self._fail_next, None
        return failure

    def insert_companion(
        self, fields: NewCompanion, author: str
    ) -> StoreResult[CompanionRecord]:
        failure = self._begin("insert_companion")
        if failure:
            return failure
        for existing in self.companions.values():
            if existing.author == author and existing.name == fields.name:
                return StoreFailure(
                    StoreErrorKind.CONFLICT,
                    f"duplicate companion name {fields.name!r} for {author}",
                )
        record = CompanionRecord(
            id=uuid.uuid4().hex,
            name=fields.name,
            subject=fields.subject,
            topic=fields.topic,
            author=author,
            voice=fields.voice,
            style=fields.style,
            duration=fields.duration,
        )
        self.companions[record.id] = record
        return StoreOk(record)

    def select_companions(
        self, query: CompanionQuery
    ) -> StoreResult[list[CompanionRecord]]:
        failure = self._begin("select_companions")
        if failure:
            return failure
        matching = [c for c in self.companions.values() if query.matches(c)]
        return StoreOk(matching[query.offset : query.offset + query.limit])

    def get_companion(self, companion_id: str) -> StoreResult[CompanionRecord]:
        failure = self._begin("get_companion")
        if failure:
            return failure
        record = self.companions.get(companion_id)
        if record is None:
            return StoreFailure(StoreErrorKind.NOT_FOUND, companion_id)
        return StoreOk(record)

    def select_companions_by_author(
        self, author: str
    ) -> StoreResult[list[CompanionRecord]]:
        failure = self._begin("select_companions_by_author")
        if failure:
            return failure
        return StoreOk([c for c in self.companions.values() if c.author == author])

    def count_companions_by_author(self, author: str) -> StoreResult[int]:
        failure = self._begin("count_companions_by_author")
        if failure:
            return failure
        return StoreOk(sum(1 for c in self.companions.values() if c.author == author))

    def insert_session(self, user_id: str, companion_id: str) -> StoreResult[None]:
        failure = self._begin("insert_session")
        if failure:
            return failure
        self.sessions.append(
            SessionEntry(
                id=next(self._session_ids),
                user_id=user_id,
                companion_id=companion_id,
                created_at=time.time(),
            )
        )
        return StoreOk(None)

    def select_session_companions(
        self, user_id: str | None, limit: int
    ) -> StoreResult[list[Optional[CompanionRecord]]]:
        failure = self._begin("select_session_companions")
        if failure:
            return failure
        entries = [
            s for s in self.sessions if user_id is None or s.user_id == user_id
        ]
        entries.sort(key=lambda s: (s.created_at, s.id), reverse=True)
        return StoreOk([self.companions.get(s.companion_id) for s in entries[:limit]])

    def insert_bookmark(self, user_id: str, companion_id: str) -> StoreResult[None]:
        failure = self._begin("insert_bookmark")
        if failure:
            return failure
        key = (user_id, companion_id)
        if key in self.bookmarks:
            return StoreFailure(
                StoreErrorKind.CONFLICT, f"duplicate bookmark {companion_id}"
            )
        self.bookmarks[key] = time.time()
        return StoreOk(None)

    def delete_bookmark(self, user_id: str, companion_id: str) -> StoreResult[None]:
        failure = self._begin("delete_bookmark")
        if failure:
            return failure
        self.bookmarks.pop((user_id, companion_id), None)
        return StoreOk(None)

    def select_bookmark_companions(
        self, user_id: str
    ) -> StoreResult[list[Optional[CompanionRecord]]]:
        failure = self._begin("select_bookmark_companions")
        if failure:
            return failure
        return StoreOk(
            [
                self.companions.get(companion_id)
                for (owner, companion_id) in self.bookmarks
                if owner == user_id
            ]
        )


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code == UNIQUE_VIOLATION
    return "unique" in str(orig).lower()


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _execute(self, operation: Callable[[Session], T]) -> StoreResult[T]:
        try:
            with self.Session() as session:
                return StoreOk(operation(session))
        except NoResultFound as exc:
            return StoreFailure(StoreErrorKind.NOT_FOUND, str(exc))
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                return StoreFailure(StoreErrorKind.CONFLICT, str(exc.orig))
            return StoreFailure(StoreErrorKind.TRANSPORT, str(exc.orig))
        except SQLAlchemyError as exc:
            return StoreFailure(StoreErrorKind.TRANSPORT, str(exc))

    def _to_companion_record(self, row: "CompanionRow") -> CompanionRecord:
        return CompanionRecord(
            id=row.id,
            name=row.name,
            subject=row.subject,
            topic=row.topic,
            author=row.author,
            voice=row.voice,
            style=row.style,
            duration=row.duration,
            created_at=row.created_at,
        )

    def _optional_record(
        self, row: Optional["CompanionRow"]
    ) -> Optional[CompanionRecord]:
        return self._to_companion_record(row) if row is not None else None

    def insert_companion(
        self, fields: NewCompanion, author: str
    ) -> StoreResult[CompanionRecord]:
        def run(session: Session) -> CompanionRecord:
            row = CompanionRow(
                id=uuid.uuid4().hex,
                name=fields.name,
                subject=fields.subject,
                topic=fields.topic,
                voice=fields.voice,
                style=fields.style,
                duration=fields.duration,
                author=author,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_companion_record(row)

        return self._execute(run)

    def select_companions(
        self, query: CompanionQuery
    ) -> StoreResult[list[CompanionRecord]]:
        def run(session: Session) -> list[CompanionRecord]:
            stmt = select(CompanionRow)
            if query.subject:
                stmt = stmt.where(
                    CompanionRow.subject.icontains(query.subject, autoescape=True)
                )
            if query.topic:
                stmt = stmt.where(
                    or_(
                        CompanionRow.topic.icontains(query.topic, autoescape=True),
                        CompanionRow.name.icontains(query.topic, autoescape=True),
                    )
                )
            stmt = (
                stmt.order_by(CompanionRow.created_at.asc(), CompanionRow.seq.asc())
                .offset(query.offset)
                .limit(query.limit)
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_companion_record(row) for row in rows]

        return self._execute(run)

    def get_companion(self, companion_id: str) -> StoreResult[CompanionRecord]:
        def run(session: Session) -> CompanionRecord:
            stmt = select(CompanionRow).where(CompanionRow.id == companion_id)
            return self._to_companion_record(session.execute(stmt).scalar_one())

        return self._execute(run)

    def select_companions_by_author(
        self, author: str
    ) -> StoreResult[list[CompanionRecord]]:
        def run(session: Session) -> list[CompanionRecord]:
            stmt = (
                select(CompanionRow)
                .where(CompanionRow.author == author)
                .order_by(CompanionRow.created_at.asc(), CompanionRow.seq.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_companion_record(row) for row in rows]

        return self._execute(run)

    def count_companions_by_author(self, author: str) -> StoreResult[int]:
        def run(session: Session) -> int:
            stmt = (
                select(func.count())
                .select_from(CompanionRow)
                .where(CompanionRow.author == author)
            )
            return session.execute(stmt).scalar_one()

        return self._execute(run)

    def insert_session(self, user_id: str, companion_id: str) -> StoreResult[None]:
        def run(session: Session) -> None:
            session.add(
                SessionHistoryRow(
                    user_id=user_id,
                    companion_id=companion_id,
                    created_at=time.time(),
                )
            )
            session.commit()

        return self._execute(run)

    def select_session_companions(
        self, user_id: str | None, limit: int
    ) -> StoreResult[list[Optional[CompanionRecord]]]:
        def run(session: Session) -> list[Optional[CompanionRecord]]:
            stmt = (
                select(CompanionRow)
                .select_from(SessionHistoryRow)
                .outerjoin(
                    CompanionRow, CompanionRow.id == SessionHistoryRow.companion_id
                )
            )
            if user_id is not None:
                stmt = stmt.where(SessionHistoryRow.user_id == user_id)
            stmt = stmt.order_by(
                SessionHistoryRow.created_at.desc(), SessionHistoryRow.id.desc()
            ).limit(limit)
            rows = session.execute(stmt).scalars().all()
            return [self._optional_record(row) for row in rows]

        return self._execute(run)

    def insert_bookmark(self, user_id: str, companion_id: str) -> StoreResult[None]:
        def run(session: Session) -> None:
            session.add(
                BookmarkRow(
                    user_id=user_id,
                    companion_id=companion_id,
                    created_at=time.time(),
                )
            )
            session.commit()

        return self._execute(run)

    def delete_bookmark(self, user_id: str, companion_id: str) -> StoreResult[None]:
        def run(session: Session) -> None:
            session.execute(
                delete(BookmarkRow).where(
                    BookmarkRow.companion_id == companion_id,
                    BookmarkRow.user_id == user_id,
                )
            )
            session.commit()

        return self._execute(run)

    def select_bookmark_companions(
        self, user_id: str
    ) -> StoreResult[list[Optional[CompanionRecord]]]:
        def run(session: Session) -> list[Optional[CompanionRecord]]:
            stmt = (
                select(CompanionRow)
                .select_from(BookmarkRow)
                .outerjoin(CompanionRow, CompanionRow.id == BookmarkRow.companion_id)
                .where(BookmarkRow.user_id == user_id)
                .order_by(BookmarkRow.id.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._optional_record(row) for row in rows]

        return self._execute(run)


Base = declarative_base()


class CompanionRow(Base):
    __tablename__ = "companions"
    __table_args__ = (UniqueConstraint("author", "name", name="uq_companions_author_name"),)

    # Insertion sequence; breaks created_at ties in listings.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    subject = Column(String, nullable=False, index=True)
    topic = Column(String, nullable=False)
    voice = Column(String, nullable=False, default="")
    style = Column(String, nullable=False, default="")
    duration = Column(Integer, nullable=False, default=15)
    author = Column(String, nullable=False, index=True)
    created_at = Column(Float, nullable=False)


class SessionHistoryRow(Base):
    __tablename__ = "session_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    companion_id = Column(String, ForeignKey("companions.id"), nullable=False)
    created_at = Column(Float, nullable=False, index=True)


class BookmarkRow(Base):
    __tablename__ = "bookmarks"
    __table_args__ = (
        UniqueConstraint("user_id", "companion_id", name="uq_bookmarks_user_companion"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    companion_id = Column(String, ForeignKey("companions.id"), nullable=False)
    created_at = Column(Float, nullable=False)
