"""Moderator statistics and dispute stores.

The engine only talks to the ``ModeratorStore`` and ``DisputeStore`` protocols.
The in-memory implementations below back the service and the tests; in
production they are replaced by PostgreSQL-backed stores with the same
methods.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from ..errors import AssignmentCommitError, DisputeNotFoundError
from ..models import Dispute, DisputeStatus, Moderator, ModeratorTier, Order


class ModeratorStore(Protocol):
    async def list_moderators(
        self, tiers: Optional[Iterable[ModeratorTier]] = None
    ) -> list[Moderator]: ...

    async def get_moderator(self, moderator_id: str) -> Optional[Moderator]: ...


class DisputeStore(Protocol):
    async def get_dispute(self, dispute_id: str) -> Optional[Dispute]: ...

    async def count_disputes(
        self, assigned_to: str, statuses: Iterable[DisputeStatus]
    ) -> int: ...

    async def count_recently_updated(self, assigned_to: str, since: datetime) -> int: ...

    async def list_oldest_disputes(
        self, assigned_to: str, status: DisputeStatus, limit: int
    ) -> list[Dispute]: ...

    async def update_assignment(
        self,
        dispute_id: str,
        moderator_id: Optional[str],
        expected_current: Optional[str],
        status: Optional[DisputeStatus] = None,
    ) -> Dispute: ...

    async def get_order(self, order_id: str) -> Optional[Order]: ...


class InMemoryModeratorStore:
    """In-memory moderator statistics. Enumeration follows insertion order."""

    def __init__(self, moderators: Optional[Iterable[Moderator]] = None):
        self._moderators: dict[str, Moderator] = {}
        for moderator in moderators or ():
            self.add_moderator(moderator)

    def add_moderator(self, moderator: Moderator) -> None:
        self._moderators[moderator.moderator_id] = moderator

    def clear(self) -> None:
        self._moderators.clear()

    async def list_moderators(
        self, tiers: Optional[Iterable[ModeratorTier]] = None
    ) -> list[Moderator]:
        if tiers is None:
            return [m.model_copy() for m in self._moderators.values()]
        wanted = set(tiers)
        return [m.model_copy() for m in self._moderators.values() if m.tier in wanted]

    async def get_moderator(self, moderator_id: str) -> Optional[Moderator]:
        moderator = self._moderators.get(moderator_id)
        return moderator.model_copy() if moderator else None


class InMemoryDisputeStore:
    """In-memory dispute and order store. In production, backed by PostgreSQL."""

    def __init__(self):
        self._disputes: dict[str, Dispute] = {}
        self._orders: dict[str, Order] = {}

    def add_dispute(self, dispute: Dispute) -> Dispute:
        self._disputes[dispute.id] = dispute
        return dispute

    def add_order(self, order: Order) -> Order:
        self._orders[order.id] = order
        return order

    def clear(self) -> None:
        self._disputes.clear()
        self._orders.clear()

    async def get_dispute(self, dispute_id: str) -> Optional[Dispute]:
        dispute = self._disputes.get(dispute_id)
        return dispute.model_copy() if dispute else None

    async def count_disputes(
        self, assigned_to: str, statuses: Iterable[DisputeStatus]
    ) -> int:
        wanted = set(statuses)
        return sum(
            1 for d in self._disputes.values()
            if d.assigned_to == assigned_to and d.status in wanted
        )

    async def count_recently_updated(self, assigned_to: str, since: datetime) -> int:
        return sum(
            1 for d in self._disputes.values()
            if d.assigned_to == assigned_to and d.updated_at >= since
        )

    async def list_oldest_disputes(
        self, assigned_to: str, status: DisputeStatus, limit: int
    ) -> list[Dispute]:
        if limit <= 0:
            return []
        matching = [
            d for d in self._disputes.values()
            if d.assigned_to == assigned_to and d.status == status
        ]
        matching.sort(key=lambda d: d.created_at)
        return [d.model_copy() for d in matching[:limit]]

    async def update_assignment(
        self,
        dispute_id: str,
        moderator_id: Optional[str],
        expected_current: Optional[str],
        status: Optional[DisputeStatus] = None,
    ) -> Dispute:
        """Conditionally set ``assigned_to``.

        The write only happens if the dispute is still assigned to
        ``expected_current``; otherwise another writer got there first and
        ``AssignmentCommitError`` is raised with the dispute untouched.
        """
        dispute = self._disputes.get(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        if dispute.assigned_to != expected_current:
            raise AssignmentCommitError(
                f"Dispute {dispute_id} assignment changed concurrently: "
                f"expected {expected_current}, found {dispute.assigned_to}"
            )

        dispute.assigned_to = moderator_id
        if status is not None:
            dispute.status = status
        dispute.updated_at = datetime.now(timezone.utc)
        return dispute.model_copy()

    async def get_order(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)
