"""Tier hierarchy: which moderator tiers may serve which requirements."""

from __future__ import annotations

from ..models import DisputeSeverity, ModeratorTier

TIER_RANK: dict[ModeratorTier, int] = {
    ModeratorTier.COMMUNITY: 1,
    ModeratorTier.SENIOR: 2,
    ModeratorTier.ADMIN: 3,
}

# Higher tiers may always handle lower-tier work
ELIGIBLE_TIERS: dict[ModeratorTier, tuple[ModeratorTier, ...]] = {
    ModeratorTier.COMMUNITY: (
        ModeratorTier.COMMUNITY,
        ModeratorTier.SENIOR,
        ModeratorTier.ADMIN,
    ),
    ModeratorTier.SENIOR: (ModeratorTier.SENIOR, ModeratorTier.ADMIN),
    ModeratorTier.ADMIN: (ModeratorTier.ADMIN,),
}

SEVERITY_TIER: dict[DisputeSeverity, ModeratorTier] = {
    DisputeSeverity.LOW: ModeratorTier.COMMUNITY,
    DisputeSeverity.MEDIUM: ModeratorTier.COMMUNITY,
    DisputeSeverity.HIGH: ModeratorTier.SENIOR,
    DisputeSeverity.CRITICAL: ModeratorTier.ADMIN,
}


def eligible_tiers(required_tier: ModeratorTier) -> tuple[ModeratorTier, ...]:
    """Tiers allowed to serve ``required_tier``, lowest first."""
    return ELIGIBLE_TIERS[required_tier]


def tier_for_severity(severity: DisputeSeverity) -> ModeratorTier:
    """Ideal tier for a severity, also the default required tier of a dispute."""
    return SEVERITY_TIER[severity]


def can_handle(moderator_tier: ModeratorTier, required_tier: ModeratorTier) -> bool:
    return TIER_RANK[moderator_tier] >= TIER_RANK[required_tier]
