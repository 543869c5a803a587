"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header

from companion_backend.config import get_settings
from companion_backend.db import DbClient, InMemoryDbClient, SqlDbClient
from companion_backend.identity import (
    Caller,
    IdentityResolver,
    JwtIdentityResolver,
    StaticIdentityResolver,
)
from companion_backend.permissions import QuotaPolicy
from companion_backend.revalidation import (
    InMemoryRevalidator,
    PageRevalidator,
    RedisRevalidator,
)

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_identity_resolver: IdentityResolver | None = None
_revalidator: PageRevalidator | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton store client shared across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_identity_resolver() -> IdentityResolver:
    global _identity_resolver
    if _identity_resolver:
        return _identity_resolver

    settings = get_settings()
    if settings.auth_jwt_key:
        _identity_resolver = JwtIdentityResolver(
            settings.auth_jwt_key,
            algorithms=settings.auth_jwt_algorithms,
            audience=settings.auth_jwt_audience,
            issuer=settings.auth_jwt_issuer,
        )
    else:
        # Without a verification key every request is anonymous.
        logger.warning("AUTH_JWT_KEY not set; all requests are anonymous")
        _identity_resolver = StaticIdentityResolver()
    return _identity_resolver


def get_revalidator() -> PageRevalidator:
    global _revalidator
    if _revalidator:
        return _revalidator

    settings = get_settings()
    if settings.redis_url:
        _revalidator = RedisRevalidator(
            url=settings.redis_url,
            channel=settings.revalidate_channel,
        )
    else:
        _revalidator = InMemoryRevalidator()
    return _revalidator


def get_quota_policy() -> QuotaPolicy:
    return QuotaPolicy.from_settings(get_settings())


def get_caller(
    authorization: Optional[str] = Header(default=None),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[Caller]:
    """Resolve the request's caller; ``None`` for anonymous requests."""
    return resolver.resolve(authorization)


def reset_dependencies() -> None:
    """Drop cached collaborators (useful in tests)."""
    global _db_client, _identity_resolver, _revalidator
    _db_client = None
    _identity_resolver = None
    _revalidator = None
