"""Moderator fitness scoring for a candidate dispute."""

from __future__ import annotations

from typing import Optional

from ..models import DisputeSeverity, Moderator, ModeratorTier, ModeratorWorkload
from .eligibility import TIER_RANK, tier_for_severity

BASE_SCORE = 100.0
WORKLOAD_PENALTY = 10.0
EXPERIENCE_PER_RESOLUTION = 0.5
EXPERIENCE_CAP = 20.0
ACCURACY_WEIGHT = 20.0
FAST_RESOLUTION_HOURS = 24.0
SLOW_RESOLUTION_HOURS = 72.0
SPEED_ADJUSTMENT = 10.0
TIER_MATCH_BONUS = 15.0
OVERQUALIFIED_PENALTY = 5.0
RECENCY_BONUS = 5.0


class ScoreCalculator:
    """
    Computes a non-negative fitness score for one moderator.

    Factors, applied in this order starting from a base of 100:
        1. Workload: -10 per active dispute
        2. Experience: +0.5 per resolved dispute, capped at +20
        3. Accuracy: +accuracy * 20 when known
        4. Speed: +10 under 24h average, -10 over 72h, when known
        5. Tier match: +15 at the severity's ideal tier, -5 above it
        6. Recency: +5 if any assigned dispute was updated recently

    The result is floored at zero. Missing statistics are neutral.
    """

    def score(
        self,
        moderator: Moderator,
        active_disputes: int,
        severity: DisputeSeverity,
        recently_active: bool = False,
    ) -> float:
        """
        Score a moderator for a dispute of the given severity.

        Args:
            moderator: Statistics snapshot read from the store
            active_disputes: Current UNDER_REVIEW/ESCALATED count
            severity: Severity of the dispute being placed
            recently_active: Whether the moderator touched a dispute recently

        Returns:
            Score, never negative
        """
        score = BASE_SCORE

        score -= active_disputes * WORKLOAD_PENALTY

        score += min(moderator.disputes_resolved * EXPERIENCE_PER_RESOLUTION, EXPERIENCE_CAP)

        if moderator.accuracy_rate is not None:
            score += moderator.accuracy_rate * ACCURACY_WEIGHT

        score += self.speed_adjustment(moderator.average_resolution_hours)
        score += self.tier_adjustment(moderator.tier, severity)

        if recently_active:
            score += RECENCY_BONUS

        return max(score, 0.0)

    @staticmethod
    def speed_adjustment(average_resolution_hours: Optional[float]) -> float:
        if average_resolution_hours is None:
            return 0.0
        if average_resolution_hours < FAST_RESOLUTION_HOURS:
            return SPEED_ADJUSTMENT
        if average_resolution_hours > SLOW_RESOLUTION_HOURS:
            return -SPEED_ADJUSTMENT
        return 0.0

    @staticmethod
    def tier_adjustment(tier: ModeratorTier, severity: DisputeSeverity) -> float:
        """Exact match is preferred; over-qualified moderators pay a small penalty.

        A tier below the ideal one gets no adjustment. Eligibility filtering
        keeps such moderators out of the pool when the required tier is the
        severity's tier.
        """
        ideal = tier_for_severity(severity)
        if tier == ideal:
            return TIER_MATCH_BONUS
        if TIER_RANK[tier] > TIER_RANK[ideal]:
            return -OVERQUALIFIED_PENALTY
        return 0.0

    def snapshot(
        self,
        moderator: Moderator,
        active_disputes: int,
        severity: DisputeSeverity,
        recently_active: bool = False,
    ) -> ModeratorWorkload:
        return ModeratorWorkload(
            moderator_id=moderator.moderator_id,
            tier=moderator.tier,
            active_disputes=active_disputes,
            average_resolution_hours=moderator.average_resolution_hours,
            accuracy_rate=moderator.accuracy_rate,
            points=moderator.points,
            score=self.score(moderator, active_disputes, severity, recently_active),
        )
