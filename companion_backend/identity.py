"""
Caller identity and plan entitlements, resolved from identity-provider tokens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol, Sequence

import jwt

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Caller:
    """An authenticated user and the entitlements attached to their session."""

    user_id: str
    plan: Optional[str] = None
    features: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has(
        self,
        *,
        permission: str | None = None,
        plan: str | None = None,
        feature: str | None = None,
    ) -> bool:
        if permission is not None and permission in self.permissions:
            return True
        if plan is not None and self.plan == plan:
            return True
        if feature is not None and feature in self.features:
            return True
        return False


class IdentityResolver(Protocol):
    """Resolves the caller behind a request's Authorization header."""

    def resolve(self, authorization: str | None) -> Optional[Caller]:
        ...


@dataclass
class StaticIdentityResolver:
    """Always resolves to the same caller (or anonymous). For dev and tests."""

    caller: Optional[Caller] = None

    def resolve(self, authorization: str | None) -> Optional[Caller]:
        return self.caller


def _strip_scope(value: str) -> str:
    # Provider claims are scoped as "u:<name>" (user) or "o:<name>" (org).
    if len(value) > 2 and value[1] == ":" and value[0] in ("u", "o"):
        return value[2:]
    return value


def _split_claim(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        items: Iterable[str] = value.split(",")
    else:
        items = (str(item) for item in value)
    return [item.strip() for item in items if item and item.strip()]


def caller_from_claims(claims: dict) -> Optional[Caller]:
    """Map verified session-token claims to a ``Caller``."""
    user_id = claims.get("sub")
    if not user_id:
        return None
    plan = claims.get("pla")
    permissions = _split_claim(claims.get("permissions")) + _split_claim(
        claims.get("org_permissions")
    )
    return Caller(
        user_id=str(user_id),
        plan=_strip_scope(plan) if isinstance(plan, str) and plan else None,
        features=frozenset(_strip_scope(f) for f in _split_claim(claims.get("fea"))),
        permissions=frozenset(permissions),
    )


class JwtIdentityResolver:
    """
    Verifies bearer session tokens issued by the identity provider.

    Anonymous requests and tokens that fail verification both resolve to
    ``None``; the action layer decides whether identity is required.
    """

    def __init__(
        self,
        key: str,
        algorithms: Sequence[str] = ("RS256",),
        audience: str | None = None,
        issuer: str | None = None,
    ):
        if not key:
            raise ValueError("AUTH_JWT_KEY is required for JwtIdentityResolver")
        self.key = key
        self.algorithms = list(algorithms)
        self.audience = audience
        self.issuer = issuer

    def resolve(self, authorization: str | None) -> Optional[Caller]:
        if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
            return None
        token = authorization[len(BEARER_PREFIX) :].strip()
        if not token:
            return None

        decode_params: dict[str, Any] = {
            "algorithms": self.algorithms,
            "options": {"verify_aud": self.audience is not None},
        }
        if self.audience is not None:
            decode_params["audience"] = self.audience
        if self.issuer is not None:
            decode_params["issuer"] = self.issuer

        try:
            claims = jwt.decode(token, self.key, **decode_params)
        except jwt.ExpiredSignatureError:
            logger.warning("Session token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning("Invalid session token: %s", e)
            return None
        return caller_from_claims(claims)
