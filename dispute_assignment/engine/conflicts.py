"""Conflict-of-interest detection between moderators and dispute parties."""

from __future__ import annotations

import logging

from ..services.store import DisputeStore

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Flags moderators who are a party to a dispute or its related order."""

    def __init__(self, disputes: DisputeStore):
        self.disputes = disputes

    async def has_conflict(self, moderator_id: str, dispute_id: str) -> bool:
        """Return True if the moderator may not handle the dispute.

        A missing dispute reports no conflict; callers validate existence
        before asking.
        """
        dispute = await self.disputes.get_dispute(dispute_id)
        if dispute is None:
            logger.debug("Conflict check on missing dispute %s", dispute_id)
            return False

        if moderator_id in (dispute.reporter_id, dispute.reported_id):
            return True

        if dispute.order_id:
            order = await self.disputes.get_order(dispute.order_id)
            if order and moderator_id in (order.buyer_id, order.seller_id):
                return True

        return False
