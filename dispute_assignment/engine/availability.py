"""Moderator capacity, utilization and pool statistics."""

from __future__ import annotations

import asyncio
from typing import Optional

from ..config import settings
from ..models import (
    ACTIVE_STATUSES,
    ModeratorAvailability,
    ModeratorTier,
    PoolStatistics,
    PoolSummary,
)
from ..services.store import DisputeStore, ModeratorStore


def default_capacities() -> dict[ModeratorTier, int]:
    return {
        ModeratorTier.COMMUNITY: settings.CAPACITY_COMMUNITY,
        ModeratorTier.SENIOR: settings.CAPACITY_SENIOR,
        ModeratorTier.ADMIN: settings.CAPACITY_ADMIN,
    }


class AvailabilityReporter:
    """Derives capacity and utilization from live workload counts."""

    def __init__(
        self,
        moderators: ModeratorStore,
        disputes: DisputeStore,
        capacities: Optional[dict[ModeratorTier, int]] = None,
    ):
        self.moderators = moderators
        self.disputes = disputes
        self.capacities = default_capacities() if capacities is None else capacities

    async def active_workload(self, moderator_id: str) -> int:
        return await self.disputes.count_disputes(moderator_id, ACTIVE_STATUSES)

    async def get_availability(self, moderator_id: str) -> ModeratorAvailability:
        moderator = await self.moderators.get_moderator(moderator_id)
        if moderator is None:
            return ModeratorAvailability(moderator_id=moderator_id, available=False)

        workload = await self.active_workload(moderator_id)
        capacity = self.capacities[moderator.tier]
        return ModeratorAvailability(
            moderator_id=moderator_id,
            tier=moderator.tier,
            available=workload < capacity,
            current_workload=workload,
            max_capacity=capacity,
            utilization_rate=workload / capacity if capacity else 0.0,
        )

    async def get_pool_statistics(self) -> PoolStatistics:
        moderators = await self.moderators.list_moderators()
        rows = await asyncio.gather(
            *(self.get_availability(m.moderator_id) for m in moderators)
        )

        total = len(rows)
        total_workload = sum(r.current_workload for r in rows)
        summary = PoolSummary(
            total_moderators=total,
            total_workload=total_workload,
            average_workload=total_workload / total if total else 0.0,
            average_utilization=(
                sum(r.utilization_rate for r in rows) / total if total else 0.0
            ),
        )
        return PoolStatistics(moderators=list(rows), summary=summary)
