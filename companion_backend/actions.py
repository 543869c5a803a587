"""
Companion catalog actions.

Each action validates its inputs, checks the caller where identity is
required, issues a single store call and maps the outcome to an
``ActionResult``. Actions never raise: store failures and unexpected errors
are logged here and reported to the caller as a ``Failure`` message.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Optional

from companion_backend.db import (
    CompanionQuery,
    CompanionRecord,
    DbClient,
    NewCompanion,
    StoreErrorKind,
    StoreFailure,
)
from companion_backend.identity import Caller
from companion_backend.permissions import (
    QuotaPolicy,
    decide_creation,
    entitlements_for,
)
from companion_backend.results import (
    UNEXPECTED_MESSAGE,
    ActionResult,
    ErrorKind,
    Failure,
    Success,
    auth_required,
)
from companion_backend.revalidation import PageRevalidator

logger = logging.getLogger(__name__)

DUPLICATE_COMPANION_MESSAGE = "A companion with this name already exists."
DUPLICATE_BOOKMARK_MESSAGE = "This companion is already bookmarked."
COMPANION_NOT_FOUND_MESSAGE = "Companion not found."
LIMIT_REACHED_MESSAGE = "Companion limit reached."
LIMIT_CHECK_FAILED_MESSAGE = "Could not verify your companion limit."
PERMISSION_CHECK_UNEXPECTED_MESSAGE = (
    "An unexpected error occurred while checking permissions."
)


def action(name: str, unexpected_message: str = UNEXPECTED_MESSAGE) -> Callable:
    """Turn any exception escaping an action into an UNEXPECTED failure."""

    def decorator(func: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> ActionResult:
            try:
                return func(*args, **kwargs)
            except Exception:
                logger.exception("Unexpected %s error", name)
                return Failure(unexpected_message, ErrorKind.UNEXPECTED)

        return wrapper

    return decorator


def _store_failure(
    name: str,
    failure: StoreFailure,
    message: str,
    *,
    conflict_message: str | None = None,
    not_found_message: str | None = None,
) -> Failure:
    if failure.kind == StoreErrorKind.CONFLICT and conflict_message:
        logger.info("%s conflict: %s", name, failure.detail)
        return Failure(conflict_message, ErrorKind.CONFLICT)
    if failure.kind == StoreErrorKind.NOT_FOUND and not_found_message:
        return Failure(not_found_message, ErrorKind.NOT_FOUND)
    logger.error("Store %s error (%s): %s", name, failure.kind, failure.detail)
    return Failure(message, ErrorKind.STORE_ERROR)


def _present(companions: list[Optional[CompanionRecord]]) -> list[CompanionRecord]:
    # Rows whose companion link no longer resolves are dropped.
    return [companion for companion in companions if companion is not None]


INVALID_PAGING_MESSAGE = "Invalid pagination parameters."


def _invalid_limit(name: str, limit: int) -> Failure | None:
    if limit < 1:
        logger.info("%s rejected: limit must be >= 1, got %s", name, limit)
        return Failure(INVALID_PAGING_MESSAGE, ErrorKind.INVALID_INPUT)
    return None


def _revalidate(revalidator: PageRevalidator, path: str) -> None:
    try:
        revalidator.revalidate(path)
    except Exception as e:
        logger.warning("Revalidation of %s failed: %s", path, e)


# Companions


@action("CreateCompanion")
def create_companion(
    db: DbClient,
    caller: Caller | None,
    revalidator: PageRevalidator,
    form: NewCompanion,
) -> ActionResult[CompanionRecord]:
    if caller is None:
        return auth_required()

    result = db.insert_companion(form, author=caller.user_id)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "CreateCompanion",
            result,
            "Database error: Failed to create companion.",
            conflict_message=DUPLICATE_COMPANION_MESSAGE,
        )
    if result.value is None:
        return Failure(
            "Failed to create companion, no data returned.", ErrorKind.STORE_ERROR
        )

    logger.info("Companion %s created by %s", result.value.id, caller.user_id)
    _revalidate(revalidator, "/")
    return Success(result.value)


@action("GetAllCompanions")
def get_all_companions(
    db: DbClient,
    *,
    limit: int = 10,
    page: int = 1,
    subject: str | None = None,
    topic: str | None = None,
) -> ActionResult[list[CompanionRecord]]:
    try:
        query = CompanionQuery(limit=limit, page=page, subject=subject, topic=topic)
    except ValueError as e:
        logger.info("GetAllCompanions rejected: %s", e)
        return Failure(INVALID_PAGING_MESSAGE, ErrorKind.INVALID_INPUT)

    result = db.select_companions(query)
    if isinstance(result, StoreFailure):
        return _store_failure("GetAllCompanions", result, "Failed to fetch companions.")
    return Success(result.value or [])


@action("GetCompanion")
def get_companion(db: DbClient, companion_id: str) -> ActionResult[CompanionRecord]:
    result = db.get_companion(companion_id)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "GetCompanion",
            result,
            "Failed to fetch companion data.",
            not_found_message=COMPANION_NOT_FOUND_MESSAGE,
        )
    if result.value is None:
        return Failure(COMPANION_NOT_FOUND_MESSAGE, ErrorKind.NOT_FOUND)
    return Success(result.value)


@action("GetUserCompanions")
def get_user_companions(
    db: DbClient, caller: Caller | None
) -> ActionResult[list[CompanionRecord]]:
    if caller is None:
        return auth_required()

    result = db.select_companions_by_author(caller.user_id)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "GetUserCompanions", result, "Failed to fetch your companions."
        )
    return Success(result.value or [])


# Sessions & history


@action("GetUserSessions")
def get_user_sessions(
    db: DbClient, caller: Caller | None, limit: int = 10
) -> ActionResult[list[CompanionRecord]]:
    if caller is None:
        return auth_required()

    invalid = _invalid_limit("GetUserSessions", limit)
    if invalid:
        return invalid

    result = db.select_session_companions(caller.user_id, limit)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "GetUserSessions", result, "Failed to fetch your session history."
        )
    return Success(_present(result.value or []))


@action("AddToSessionHistory")
def add_to_session_history(
    db: DbClient, caller: Caller | None, companion_id: str
) -> ActionResult[None]:
    if caller is None:
        return auth_required("Authentication required to start a session.")

    result = db.insert_session(caller.user_id, companion_id)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "AddToSessionHistory", result, "Failed to save session history."
        )
    return Success(None)


@action("GetRecentSessions")
def get_recent_sessions(
    db: DbClient, limit: int = 10
) -> ActionResult[list[CompanionRecord]]:
    invalid = _invalid_limit("GetRecentSessions", limit)
    if invalid:
        return invalid

    result = db.select_session_companions(None, limit)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "GetRecentSessions", result, "Failed to fetch recent sessions."
        )
    return Success(_present(result.value or []))


# Bookmarks


@action("AddBookmark")
def add_bookmark(
    db: DbClient,
    caller: Caller | None,
    revalidator: PageRevalidator,
    companion_id: str,
    path: str,
) -> ActionResult[None]:
    if caller is None:
        return auth_required("You must be logged in to add a bookmark.")

    result = db.insert_bookmark(caller.user_id, companion_id)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "AddBookmark",
            result,
            "Failed to add bookmark.",
            conflict_message=DUPLICATE_BOOKMARK_MESSAGE,
        )

    _revalidate(revalidator, path)
    return Success(None)


@action("RemoveBookmark")
def remove_bookmark(
    db: DbClient,
    caller: Caller | None,
    revalidator: PageRevalidator,
    companion_id: str,
    path: str,
) -> ActionResult[None]:
    if caller is None:
        return auth_required("You must be logged in to remove a bookmark.")

    result = db.delete_bookmark(caller.user_id, companion_id)
    if isinstance(result, StoreFailure):
        return _store_failure("RemoveBookmark", result, "Failed to remove bookmark.")

    _revalidate(revalidator, path)
    return Success(None)


@action("GetBookmarkedCompanions")
def get_bookmarked_companions(
    db: DbClient, caller: Caller | None
) -> ActionResult[list[CompanionRecord]]:
    if caller is None:
        return auth_required()

    result = db.select_bookmark_companions(caller.user_id)
    if isinstance(result, StoreFailure):
        return _store_failure(
            "GetBookmarkedCompanions", result, "Failed to fetch bookmarks."
        )
    return Success(_present(result.value or []))


# Permissions


def _creation_decision(db: DbClient, caller: Caller, policy: QuotaPolicy):
    entitlements = entitlements_for(caller, policy)
    if entitlements.unlimited:
        return decide_creation(entitlements, None)

    result = db.count_companions_by_author(caller.user_id)
    if isinstance(result, StoreFailure):
        return _store_failure("CompanionCount", result, LIMIT_CHECK_FAILED_MESSAGE)
    return decide_creation(entitlements, result.value)


@action("CheckCompanionCreationPermissions", PERMISSION_CHECK_UNEXPECTED_MESSAGE)
def check_companion_creation_permissions(
    db: DbClient, caller: Caller | None, policy: QuotaPolicy | None = None
) -> ActionResult[bool]:
    """Report whether the caller may create another companion.

    Succeeds with ``False`` when the quota is used up; see
    ``new_companion_permissions`` for the variant that fails instead.
    """
    if caller is None:
        return auth_required()

    decision = _creation_decision(db, caller, policy or QuotaPolicy())
    if isinstance(decision, Failure):
        return decision
    return Success(decision.allowed)


@action("NewCompanionPermissions", PERMISSION_CHECK_UNEXPECTED_MESSAGE)
def new_companion_permissions(
    db: DbClient, caller: Caller | None, policy: QuotaPolicy | None = None
) -> ActionResult[bool]:
    if caller is None:
        return auth_required()

    decision = _creation_decision(db, caller, policy or QuotaPolicy())
    if isinstance(decision, Failure):
        return decision
    if not decision.allowed:
        logger.info(
            "Companion limit reached for %s (%s/%s)",
            caller.user_id,
            decision.count,
            decision.limit,
        )
        return Failure(LIMIT_REACHED_MESSAGE, ErrorKind.LIMIT_REACHED)
    return Success(True)
