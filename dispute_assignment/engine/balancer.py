"""Periodic workload rebalancing across moderators of the same tier."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Optional

from ..config import settings
from ..errors import AssignmentError
from ..models import (
    ACTIVE_STATUSES,
    BalanceMove,
    BalanceReport,
    DisputeStatus,
    Moderator,
    ModeratorTier,
)
from ..services.store import DisputeStore, ModeratorStore
from .selector import AssignmentSelector

logger = logging.getLogger(__name__)

BALANCING_REASON = "workload_balancing"


class WorkloadBalancer:
    """
    Moves the oldest UNDER_REVIEW disputes off overloaded moderators.

    Per tier, a moderator is overloaded above 1.5x the tier mean and
    underloaded below 0.5x. Each overloaded moderator hands up to
    ceil((load - mean) / 2) disputes to the least-loaded underloaded
    moderator of its own tier. Moves never cross tiers.

    Every move goes through ``AssignmentSelector.reassign``, so it gets the
    same conflict and capacity checks as a manual reassignment. A failed move
    is logged and the pass carries on.

    Passes are serialized; workload is always re-read at the start of a pass.
    """

    def __init__(
        self,
        moderators: ModeratorStore,
        disputes: DisputeStore,
        selector: AssignmentSelector,
        overload_factor: Optional[float] = None,
        underload_factor: Optional[float] = None,
        system_actor: Optional[str] = None,
    ):
        self.moderators = moderators
        self.disputes = disputes
        self.selector = selector
        self.overload_factor = settings.OVERLOAD_FACTOR if overload_factor is None else overload_factor
        self.underload_factor = settings.UNDERLOAD_FACTOR if underload_factor is None else underload_factor
        self.system_actor = system_actor or settings.SYSTEM_ACTOR
        self._pass_lock = asyncio.Lock()

    async def run_pass(self) -> BalanceReport:
        async with self._pass_lock:
            return await self._run_pass()

    async def _workloads(self) -> list[tuple[Moderator, int]]:
        moderators = await self.moderators.list_moderators()
        counts = await asyncio.gather(
            *(self.disputes.count_disputes(m.moderator_id, ACTIVE_STATUSES) for m in moderators)
        )
        return list(zip(moderators, counts))

    @staticmethod
    def tier_averages(workloads: list[tuple[Moderator, int]]) -> dict[ModeratorTier, float]:
        """Mean active workload per tier; 0 for a tier with no moderators."""
        averages: dict[ModeratorTier, float] = {}
        for tier in ModeratorTier:
            loads = [count for m, count in workloads if m.tier == tier]
            averages[tier] = sum(loads) / len(loads) if loads else 0.0
        return averages

    async def _run_pass(self) -> BalanceReport:
        workloads = await self._workloads()
        averages = self.tier_averages(workloads)
        load = {m.moderator_id: count for m, count in workloads}

        overloaded = [
            m for m, count in workloads
            if count > averages[m.tier] * self.overload_factor
        ]
        underloaded = [
            m for m, count in workloads
            if count < averages[m.tier] * self.underload_factor
        ]

        report = BalanceReport(
            tier_averages=averages,
            overloaded=[m.moderator_id for m in overloaded],
            underloaded=[m.moderator_id for m in underloaded],
        )

        for source in overloaded:
            mean = averages[source.tier]
            targets = [
                m for m in underloaded
                if m.tier == source.tier
                and load[m.moderator_id] < mean * self.underload_factor
            ]
            if not targets:
                logger.debug("No same-tier target for overloaded %s", source.moderator_id)
                continue

            # min() keeps the first of equal loads
            target = min(targets, key=lambda m: load[m.moderator_id])
            take = math.ceil((load[source.moderator_id] - mean) / 2)
            disputes = await self.disputes.list_oldest_disputes(
                source.moderator_id, DisputeStatus.UNDER_REVIEW, take
            )

            for dispute in disputes:
                move = await self._move(dispute.id, source.moderator_id, target.moderator_id)
                report.moves.append(move)
                if move.succeeded:
                    load[source.moderator_id] -= 1
                    load[target.moderator_id] += 1

        logger.info(
            "Balancing pass: %d overloaded, %d underloaded, %d/%d moves succeeded",
            len(overloaded), len(underloaded), report.moved_count, len(report.moves),
        )
        return report

    async def _move(self, dispute_id: str, source_id: str, target_id: str) -> BalanceMove:
        try:
            await self.selector.reassign(
                dispute_id, target_id, self.system_actor, BALANCING_REASON
            )
        except AssignmentError as exc:
            logger.warning(
                "Balancing move of dispute %s from %s to %s failed: %s",
                dispute_id, source_id, target_id, exc,
            )
            return BalanceMove(
                dispute_id=dispute_id,
                from_moderator=source_id,
                to_moderator=target_id,
                succeeded=False,
                error=str(exc),
            )
        return BalanceMove(
            dispute_id=dispute_id,
            from_moderator=source_id,
            to_moderator=target_id,
            succeeded=True,
        )
