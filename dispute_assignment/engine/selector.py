"""Assignment selection — picks moderators and commits assignments."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Iterable, Optional

from ..config import settings
from ..errors import (
    AssignmentCommitError,
    AssignmentError,
    CapacityError,
    ConflictOfInterestError,
    DisputeNotFoundError,
    DisputeStateError,
    ModeratorNotFoundError,
)
from ..models import (
    ACTIVE_STATUSES,
    ActionType,
    AssignmentAction,
    Dispute,
    DisputeSeverity,
    DisputeStatus,
    Moderator,
    ModeratorTier,
    ModeratorWorkload,
)
from ..services.audit_log import AuditSink
from ..services.store import DisputeStore, ModeratorStore
from .availability import AvailabilityReporter
from .conflicts import ConflictDetector
from .eligibility import eligible_tiers, tier_for_severity
from .scoring import ScoreCalculator

logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = (DisputeStatus.OPEN,) + ACTIVE_STATUSES


class KeyedLocks:
    """One ``asyncio.Lock`` per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class AssignmentSelector:
    """
    Orchestrates eligibility, conflict checks and scoring.

    Candidates are scored concurrently but always ranked in the order the
    moderator store enumerates them, so equal scores resolve to the
    earliest-enumerated moderator.

    Every write to a dispute's assignment runs under a lock keyed by the
    dispute id and goes through the store's conditional update. The target
    moderator's capacity check and the write share a second lock keyed by
    the moderator id, always taken after the dispute lock.
    """

    def __init__(
        self,
        moderators: ModeratorStore,
        disputes: DisputeStore,
        audit: AuditSink,
        conflicts: ConflictDetector,
        availability: AvailabilityReporter,
        calculator: Optional[ScoreCalculator] = None,
        recent_activity_hours: Optional[int] = None,
    ):
        self.moderators = moderators
        self.disputes = disputes
        self.audit = audit
        self.conflicts = conflicts
        self.availability = availability
        self.calculator = calculator or ScoreCalculator()
        if recent_activity_hours is None:
            recent_activity_hours = settings.RECENT_ACTIVITY_HOURS
        self.recent_activity = timedelta(hours=recent_activity_hours)
        self._dispute_locks = KeyedLocks()
        self._moderator_locks = KeyedLocks()

    # --- Scoring ---

    async def score_candidates(
        self,
        candidates: Iterable[Moderator],
        severity: DisputeSeverity,
        now: Optional[datetime] = None,
    ) -> list[ModeratorWorkload]:
        """Score candidates concurrently; results keep the input order."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        since = now - self.recent_activity
        return list(
            await asyncio.gather(
                *(self._score_one(m, severity, since) for m in candidates)
            )
        )

    async def _score_one(
        self, moderator: Moderator, severity: DisputeSeverity, since: datetime
    ) -> ModeratorWorkload:
        active = await self.disputes.count_disputes(moderator.moderator_id, ACTIVE_STATUSES)
        recent = await self.disputes.count_recently_updated(moderator.moderator_id, since)
        return self.calculator.snapshot(moderator, active, severity, recently_active=recent > 0)

    @staticmethod
    def _best(scored: list[ModeratorWorkload]) -> Optional[ModeratorWorkload]:
        # max() keeps the first of equal scores
        if not scored:
            return None
        return max(scored, key=lambda w: w.score)

    # --- Selection ---

    async def select_best_moderator(
        self,
        required_tier: ModeratorTier,
        severity: DisputeSeverity,
        reported_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Pick the highest-scoring eligible moderator.

        Args:
            required_tier: Minimum tier the dispute needs
            severity: Dispute severity, drives the tier-match factor
            reported_id: Party to exclude from the pool, if any
            now: Time reference for the recency factor

        Returns:
            Moderator id, or None if nobody is left after filtering
        """
        candidates = await self.moderators.list_moderators(eligible_tiers(required_tier))
        if reported_id:
            candidates = [m for m in candidates if m.moderator_id != reported_id]
        if not candidates:
            return None

        best = self._best(await self.score_candidates(candidates, severity, now))
        return best.moderator_id if best else None

    async def recommend_moderators(
        self,
        required_tier: ModeratorTier,
        severity: DisputeSeverity,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[ModeratorWorkload]:
        """Top ``limit`` scored candidates, best first. Nobody is excluded."""
        limit = settings.RECOMMEND_LIMIT if limit is None else limit
        if limit <= 0:
            return []
        candidates = await self.moderators.list_moderators(eligible_tiers(required_tier))
        scored = await self.score_candidates(candidates, severity, now)
        # sorted() is stable, so ties keep enumeration order
        return sorted(scored, key=lambda w: w.score, reverse=True)[:limit]

    # --- Mutations ---

    async def reassign(
        self,
        dispute_id: str,
        moderator_id: str,
        actor_id: str,
        reason: str,
    ) -> AssignmentAction:
        """
        Move a dispute to a new moderator.

        All checks run before anything is written.

        Raises:
            DisputeNotFoundError: The dispute does not exist
            ModeratorNotFoundError: The moderator has no statistics record
            ConflictOfInterestError: The moderator is a party to the dispute
            CapacityError: The moderator is at or above tier capacity
            AssignmentCommitError: The store rejected the update or audit record
        """
        async with self._dispute_locks.hold(dispute_id):
            dispute = await self.disputes.get_dispute(dispute_id)
            if dispute is None:
                raise DisputeNotFoundError(dispute_id)

            moderator = await self.moderators.get_moderator(moderator_id)
            if moderator is None:
                raise ModeratorNotFoundError(moderator_id)

            if await self.conflicts.has_conflict(moderator_id, dispute_id):
                raise ConflictOfInterestError(moderator_id, dispute_id)

            async with self._moderator_locks.hold(moderator_id):
                availability = await self.availability.get_availability(moderator_id)
                if not availability.available:
                    raise CapacityError(
                        moderator_id, availability.current_workload, availability.max_capacity
                    )

                return await self._commit(dispute, moderator_id, actor_id, reason)

    async def auto_assign(
        self,
        dispute_id: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Assign an incoming dispute to the best available moderator.

        Conflicted and at-capacity moderators are dropped before ranking.
        Each ranked candidate's capacity is re-read under its moderator lock
        before the write; a candidate that filled up meanwhile is skipped.
        An OPEN dispute moves to UNDER_REVIEW once assigned. Picking the
        moderator who already holds a non-OPEN dispute writes nothing.

        Returns:
            The chosen moderator id, or None if the pool is empty
        """
        actor_id = actor_id or settings.SYSTEM_ACTOR
        async with self._dispute_locks.hold(dispute_id):
            dispute = await self.disputes.get_dispute(dispute_id)
            if dispute is None:
                raise DisputeNotFoundError(dispute_id)
            if dispute.status not in ASSIGNABLE_STATUSES:
                raise DisputeStateError(
                    f"Dispute {dispute_id} cannot be assigned in status {dispute.status.value}"
                )

            required = dispute.required_tier or tier_for_severity(dispute.severity)
            candidates = await self.moderators.list_moderators(eligible_tiers(required))
            conflicted = await asyncio.gather(
                *(self.conflicts.has_conflict(m.moderator_id, dispute_id) for m in candidates)
            )
            candidates = [m for m, bad in zip(candidates, conflicted) if not bad]

            scored = await self.score_candidates(candidates, dispute.severity, now)
            capacities = self.availability.capacities
            scored = [w for w in scored if w.active_disputes < capacities[w.tier]]

            status = DisputeStatus.UNDER_REVIEW if dispute.status == DisputeStatus.OPEN else None
            # sorted() is stable, so the first entry is what _best() would pick
            for candidate in sorted(scored, key=lambda w: w.score, reverse=True):
                moderator_id = candidate.moderator_id
                if moderator_id == dispute.assigned_to and status is None:
                    logger.info("Dispute %s already with %s", dispute_id, moderator_id)
                    return moderator_id

                async with self._moderator_locks.hold(moderator_id):
                    availability = await self.availability.get_availability(moderator_id)
                    if not availability.available:
                        continue
                    await self._commit(
                        dispute, moderator_id, actor_id, "auto_assignment", status=status
                    )
                    return moderator_id

            logger.info("No available moderators for dispute %s", dispute_id)
            return None

    async def _commit(
        self,
        dispute: Dispute,
        moderator_id: str,
        actor_id: str,
        reason: str,
        status: Optional[DisputeStatus] = None,
    ) -> AssignmentAction:
        """Write the assignment and its audit record as one unit."""
        previous = dispute.assigned_to
        try:
            await self.disputes.update_assignment(
                dispute.id, moderator_id, expected_current=previous, status=status
            )
        except AssignmentError:
            raise
        except Exception as exc:
            raise AssignmentCommitError(
                f"Store rejected assignment of dispute {dispute.id}: {exc}"
            ) from exc

        details = {"from": previous, "to": moderator_id, "reason": reason}
        try:
            action = await self.audit.append(dispute.id, actor_id, ActionType.ASSIGNED, details)
        except asyncio.CancelledError:
            await self._rollback(dispute, moderator_id, status)
            raise
        except Exception as exc:
            await self._rollback(dispute, moderator_id, status)
            raise AssignmentCommitError(
                f"Audit sink rejected assignment of dispute {dispute.id}: {exc}"
            ) from exc

        logger.info(
            "Dispute %s assigned %s -> %s by %s (%s)",
            dispute.id, previous, moderator_id, actor_id, reason,
        )
        return action

    async def _rollback(
        self, dispute: Dispute, moderator_id: str, status: Optional[DisputeStatus]
    ) -> None:
        await self.disputes.update_assignment(
            dispute.id,
            dispute.assigned_to,
            expected_current=moderator_id,
            status=dispute.status if status is not None else None,
        )
        logger.warning("Rolled back assignment of dispute %s to %s", dispute.id, moderator_id)
