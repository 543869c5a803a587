"""
Companion creation quota policy.

The decision is a pure function of the caller's entitlements and their
current companion count, so it can be tested without a store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from companion_backend.config import Settings
from companion_backend.identity import Caller


@dataclass(frozen=True)
class QuotaPolicy:
    default_limit: int = 5
    feature_limits: Mapping[str, int] = field(
        default_factory=lambda: {"3_companion_limit": 3, "10_companion_limit": 10}
    )
    unlimited_plan: str = "pro"
    unlimited_permission: str = "org:feature:unlimited_companions"

    @classmethod
    def from_settings(cls, settings: Settings) -> "QuotaPolicy":
        return cls(
            default_limit=settings.default_companion_limit,
            feature_limits=dict(settings.feature_limits),
            unlimited_plan=settings.unlimited_plan,
            unlimited_permission=settings.unlimited_permission,
        )


@dataclass(frozen=True)
class Entitlements:
    unlimited: bool
    limit: Optional[int]


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    limit: Optional[int]
    count: Optional[int]


def entitlements_for(caller: Caller, policy: QuotaPolicy) -> Entitlements:
    if caller.has(permission=policy.unlimited_permission) or caller.has(
        plan=policy.unlimited_plan
    ):
        return Entitlements(unlimited=True, limit=None)

    # With several limit features the most generous one applies.
    granted = [
        limit
        for feature, limit in policy.feature_limits.items()
        if caller.has(feature=feature)
    ]
    limit = max(granted) if granted else policy.default_limit
    return Entitlements(unlimited=False, limit=limit)


def decide_creation(entitlements: Entitlements, count: Optional[int]) -> QuotaDecision:
    if entitlements.unlimited:
        return QuotaDecision(allowed=True, limit=None, count=count)
    current = count or 0
    return QuotaDecision(
        allowed=current < entitlements.limit,
        limit=entitlements.limit,
        count=current,
    )
