"""
HTTP routes for the companion backend API.

Every action endpoint answers with the result envelope; failures are also
reflected in the status code.
"""

from __future__ import annotations
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from companion_backend import actions
from companion_backend.db import CompanionRecord, DbClient
from companion_backend.dependencies import (
    get_caller,
    get_db_client,
    get_quota_policy,
    get_revalidator,
)
from companion_backend.identity import Caller
from companion_backend.pages import (
    CompanionCard,
    Notification,
    build_home_page,
    build_journey_page,
    build_library_page,
)
from companion_backend.permissions import QuotaPolicy
from companion_backend.results import ActionResult, ErrorKind, Failure, auth_required
from companion_backend.revalidation import PageRevalidator
from companion_backend.schemas import (
    BookmarkPayload,
    CreateCompanionPayload,
    HealthResponse,
    HomePageResponse,
    JourneyPageResponse,
    LibraryPageResponse,
    SessionPayload,
)

router = APIRouter()

FAILURE_STATUS = {
    ErrorKind.AUTH_REQUIRED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.LIMIT_REACHED: 403,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.STORE_ERROR: 502,
    ErrorKind.UNEXPECTED: 500,
}


def _companion_list(companions: list[CompanionRecord]) -> list[dict]:
    return [companion.as_dict() for companion in companions]


def _respond(
    result: ActionResult,
    serialize: Callable[[Any], Any] = lambda data: data,
    status_code: int = 200,
) -> JSONResponse:
    if isinstance(result, Failure):
        return JSONResponse(
            status_code=FAILURE_STATUS.get(result.kind, 500),
            content={**result.as_dict(), "error": result.kind.value},
        )
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": serialize(result.data)},
    )


def _cards(cards: list[CompanionCard]) -> list[dict]:
    return [card.as_dict() for card in cards]


def _notes(notifications: list[Notification]) -> list[dict]:
    return [{"level": n.level, "message": n.message} for n in notifications]


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/companions")
def create_companion(
    payload: CreateCompanionPayload,
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
    revalidator: PageRevalidator = Depends(get_revalidator),
    policy: QuotaPolicy = Depends(get_quota_policy),
):
    """
    Create a companion for the caller, subject to their plan's quota.
    """
    permission = actions.new_companion_permissions(db, caller, policy)
    if isinstance(permission, Failure):
        return _respond(permission)
    result = actions.create_companion(
        db, caller, revalidator, payload.to_new_companion()
    )
    return _respond(result, lambda companion: companion.as_dict(), status_code=201)


@router.get("/companions")
def list_companions(
    limit: int = Query(10, ge=1, le=100),
    page: int = Query(1, ge=1),
    subject: str | None = Query(None, max_length=64),
    topic: str | None = Query(None, max_length=200),
    db: DbClient = Depends(get_db_client),
):
    result = actions.get_all_companions(
        db, limit=limit, page=page, subject=subject, topic=topic
    )
    return _respond(result, _companion_list)


@router.get("/companions/{companion_id}")
def get_companion(companion_id: str, db: DbClient = Depends(get_db_client)):
    result = actions.get_companion(db, companion_id)
    return _respond(result, lambda companion: companion.as_dict())


@router.get("/me/companions")
def list_my_companions(
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
):
    return _respond(actions.get_user_companions(db, caller), _companion_list)


@router.get("/me/sessions")
def list_my_sessions(
    limit: int = Query(10, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
):
    return _respond(actions.get_user_sessions(db, caller, limit), _companion_list)


@router.get("/me/bookmarks")
def list_my_bookmarks(
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
):
    return _respond(actions.get_bookmarked_companions(db, caller), _companion_list)


@router.get("/me/permissions/companions")
def companion_creation_permissions(
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
    policy: QuotaPolicy = Depends(get_quota_policy),
):
    return _respond(actions.check_companion_creation_permissions(db, caller, policy))


@router.post("/sessions")
def start_session(
    payload: SessionPayload,
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
):
    result = actions.add_to_session_history(db, caller, payload.companion_id)
    return _respond(result, status_code=201)


@router.get("/sessions/recent")
def recent_sessions(
    limit: int = Query(10, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    return _respond(actions.get_recent_sessions(db, limit), _companion_list)


@router.post("/bookmarks")
def add_bookmark(
    payload: BookmarkPayload,
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
    revalidator: PageRevalidator = Depends(get_revalidator),
):
    result = actions.add_bookmark(
        db, caller, revalidator, payload.companion_id, payload.path
    )
    return _respond(result, status_code=201)


@router.delete("/bookmarks/{companion_id}")
def remove_bookmark(
    companion_id: str,
    path: str = Query("/", max_length=512),
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
    revalidator: PageRevalidator = Depends(get_revalidator),
):
    result = actions.remove_bookmark(db, caller, revalidator, companion_id, path)
    return _respond(result)


@router.get("/pages/home", response_model=HomePageResponse)
def home_page(db: DbClient = Depends(get_db_client)):
    page = build_home_page(db)
    return HomePageResponse(
        popular=_cards(page.popular),
        recent_sessions=_cards(page.recent_sessions),
        notifications=_notes(page.notifications),
    )


@router.get("/pages/library", response_model=LibraryPageResponse)
def library_page(
    subject: str | None = Query(None, max_length=64),
    topic: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    library = build_library_page(
        db, subject=subject, topic=topic, page=page, limit=limit
    )
    return LibraryPageResponse(
        companions=_cards(library.companions),
        subject=library.subject,
        topic=library.topic,
        page=library.page,
        notifications=_notes(library.notifications),
    )


@router.get("/pages/journey", response_model=JourneyPageResponse)
def journey_page(
    db: DbClient = Depends(get_db_client),
    caller: Optional[Caller] = Depends(get_caller),
):
    if caller is None:
        return _respond(auth_required())
    journey = build_journey_page(db, caller)
    return JourneyPageResponse(
        companions=_cards(journey.companions),
        sessions=_cards(journey.sessions),
        bookmarks=_cards(journey.bookmarks),
        notifications=_notes(journey.notifications),
    )
