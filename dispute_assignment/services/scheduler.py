"""Assignment scheduler — the service boundary over the assignment engine."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from ..engine.availability import AvailabilityReporter
from ..engine.balancer import WorkloadBalancer
from ..engine.conflicts import ConflictDetector
from ..engine.selector import AssignmentSelector
from ..models import (
    AssignmentAction,
    BalanceReport,
    DisputeSeverity,
    ModeratorAvailability,
    ModeratorTier,
    ModeratorWorkload,
    PoolStatistics,
)
from .audit_log import AuditSink
from .store import DisputeStore, ModeratorStore

logger = logging.getLogger(__name__)


class AssignmentScheduler:
    """Wires the engine components to injected stores."""

    def __init__(
        self,
        moderators: ModeratorStore,
        disputes: DisputeStore,
        audit: AuditSink,
        capacities: Optional[dict[ModeratorTier, int]] = None,
    ):
        self.moderators = moderators
        self.disputes = disputes
        self.audit = audit
        self.conflicts = ConflictDetector(disputes)
        self.availability = AvailabilityReporter(moderators, disputes, capacities)
        self.selector = AssignmentSelector(
            moderators, disputes, audit, self.conflicts, self.availability
        )
        self.balancer = WorkloadBalancer(moderators, disputes, self.selector)

    async def select_best_moderator(
        self,
        required_tier: ModeratorTier,
        severity: DisputeSeverity,
        reported_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        return await self.selector.select_best_moderator(required_tier, severity, reported_id, now)

    async def recommend_moderators(
        self,
        required_tier: ModeratorTier,
        severity: DisputeSeverity,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[ModeratorWorkload]:
        return await self.selector.recommend_moderators(required_tier, severity, limit, now)

    async def reassign(
        self, dispute_id: str, moderator_id: str, actor_id: str, reason: str
    ) -> AssignmentAction:
        return await self.selector.reassign(dispute_id, moderator_id, actor_id, reason)

    async def auto_assign(
        self, dispute_id: str, actor_id: Optional[str] = None
    ) -> Optional[str]:
        return await self.selector.auto_assign(dispute_id, actor_id)

    async def has_conflict(self, moderator_id: str, dispute_id: str) -> bool:
        return await self.conflicts.has_conflict(moderator_id, dispute_id)

    async def run_balancer_pass(self) -> BalanceReport:
        return await self.balancer.run_pass()

    async def get_availability(self, moderator_id: str) -> ModeratorAvailability:
        return await self.availability.get_availability(moderator_id)

    async def get_pool_statistics(self) -> PoolStatistics:
        return await self.availability.get_pool_statistics()


async def run_balancer_periodically(
    scheduler: AssignmentScheduler, interval_seconds: float
) -> None:
    """Run a balancing pass every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await scheduler.run_balancer_pass()
        except Exception:
            logger.exception("Balancing pass failed")
