"""Pydantic models for the Dispute Assignment Service."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ModeratorTier(str, Enum):
    COMMUNITY = "COMMUNITY"
    SENIOR = "SENIOR"
    ADMIN = "ADMIN"


class DisputeSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    REJECTED = "REJECTED"


ACTIVE_STATUSES = (DisputeStatus.UNDER_REVIEW, DisputeStatus.ESCALATED)


class ActionType(str, Enum):
    ASSIGNED = "ASSIGNED"


class Moderator(BaseModel):
    moderator_id: str
    tier: ModeratorTier = ModeratorTier.COMMUNITY
    disputes_resolved: int = Field(default=0, ge=0)
    average_resolution_hours: Optional[float] = Field(default=None, ge=0.0)
    accuracy_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    points: int = Field(default=0, ge=0)


class Order(BaseModel):
    id: str
    buyer_id: str
    seller_id: str


class Dispute(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    severity: DisputeSeverity = DisputeSeverity.LOW
    status: DisputeStatus = DisputeStatus.OPEN
    reporter_id: str
    reported_id: str
    order_id: Optional[str] = None
    required_tier: Optional[ModeratorTier] = None
    assigned_to: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # naive timestamps are read as UTC so they compare with aware ones
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ModeratorWorkload(BaseModel):
    """Score snapshot for one moderator. Never persisted."""
    moderator_id: str
    tier: ModeratorTier
    active_disputes: int = 0
    average_resolution_hours: Optional[float] = None
    accuracy_rate: Optional[float] = None
    points: int = 0
    score: float = Field(default=0.0, ge=0.0)


class AssignmentAction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    dispute_id: str
    performed_by: str
    action_type: ActionType = ActionType.ASSIGNED
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)


class ModeratorAvailability(BaseModel):
    moderator_id: str
    tier: Optional[ModeratorTier] = None
    available: bool = False
    current_workload: int = 0
    max_capacity: int = 0
    utilization_rate: float = 0.0


class PoolSummary(BaseModel):
    total_moderators: int = 0
    total_workload: int = 0
    average_workload: float = 0.0
    average_utilization: float = 0.0


class PoolStatistics(BaseModel):
    moderators: list[ModeratorAvailability] = Field(default_factory=list)
    summary: PoolSummary = Field(default_factory=PoolSummary)


class BalanceMove(BaseModel):
    dispute_id: str
    from_moderator: str
    to_moderator: str
    succeeded: bool
    error: Optional[str] = None


class BalanceReport(BaseModel):
    tier_averages: dict[ModeratorTier, float] = Field(default_factory=dict)
    overloaded: list[str] = Field(default_factory=list)
    underloaded: list[str] = Field(default_factory=list)
    moves: list[BalanceMove] = Field(default_factory=list)

    @computed_field
    @property
    def moved_count(self) -> int:
        return sum(1 for m in self.moves if m.succeeded)


# --- Request / response bodies ---


class SelectRequest(BaseModel):
    required_tier: ModeratorTier
    severity: DisputeSeverity
    reported_id: Optional[str] = None


class SelectResponse(BaseModel):
    moderator_id: Optional[str] = None


class RecommendRequest(BaseModel):
    required_tier: ModeratorTier
    severity: DisputeSeverity
    limit: int = Field(default=5, ge=1, le=100)


class RecommendResponse(BaseModel):
    moderators: list[ModeratorWorkload]


class ReassignRequest(BaseModel):
    moderator_id: str
    actor_id: str
    reason: str = Field(max_length=500)


class AutoAssignRequest(BaseModel):
    actor_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    uptime_seconds: Optional[float] = None
