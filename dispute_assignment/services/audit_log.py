"""Append-only audit log for assignment actions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from ..models import ActionType, AssignmentAction


class AuditSink(Protocol):
    async def append(
        self,
        dispute_id: str,
        performed_by: str,
        action_type: ActionType,
        details: dict[str, Any],
    ) -> AssignmentAction: ...


class AuditLog:
    """Append-only audit log for assignment actions.

    In production, this writes to the dispute_action table, which allows no
    UPDATE or DELETE operations.
    """

    def __init__(self):
        self._log: list[AssignmentAction] = []

    async def append(
        self,
        dispute_id: str,
        performed_by: str,
        action_type: ActionType,
        details: dict[str, Any],
    ) -> AssignmentAction:
        """Record an immutable assignment action."""
        action = AssignmentAction(
            id=str(uuid.uuid4()),
            dispute_id=dispute_id,
            performed_by=performed_by,
            action_type=action_type,
            details=dict(details),
            created_at=datetime.now(timezone.utc),
        )
        self._log.append(action)
        return action

    def get_actions_for_dispute(self, dispute_id: str) -> list[AssignmentAction]:
        return [a for a in self._log if a.dispute_id == dispute_id]

    def get_actions_by_actor(
        self,
        performed_by: str,
        limit: int = 50,
    ) -> list[AssignmentAction]:
        actions = [a for a in self._log if a.performed_by == performed_by]
        # Most recent first
        actions.sort(key=lambda a: a.created_at, reverse=True)
        return actions[:limit]

    def clear(self) -> None:
        self._log.clear()

    @property
    def total_actions(self) -> int:
        return len(self._log)
