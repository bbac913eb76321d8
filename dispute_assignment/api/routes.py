"""Dispute Assignment API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

from ..errors import (
    AssignmentCommitError,
    CapacityError,
    ConflictOfInterestError,
    DisputeStateError,
    NotFoundError,
)
from ..models import (
    AssignmentAction,
    AutoAssignRequest,
    BalanceReport,
    ModeratorAvailability,
    PoolStatistics,
    ReassignRequest,
    RecommendRequest,
    RecommendResponse,
    SelectRequest,
    SelectResponse,
)
from ..services.audit_log import AuditLog
from ..services.scheduler import AssignmentScheduler
from ..services.store import InMemoryDisputeStore, InMemoryModeratorStore

router = APIRouter()

# Singleton service instances
_moderator_store = InMemoryModeratorStore()
_dispute_store = InMemoryDisputeStore()
_audit_log = AuditLog()
_scheduler = AssignmentScheduler(_moderator_store, _dispute_store, _audit_log)


def get_moderator_store() -> InMemoryModeratorStore:
    return _moderator_store


def get_dispute_store() -> InMemoryDisputeStore:
    return _dispute_store


def get_audit_log() -> AuditLog:
    return _audit_log


def get_scheduler() -> AssignmentScheduler:
    return _scheduler


@router.post("/assignments/select", response_model=SelectResponse)
async def select_moderator(request: SelectRequest) -> SelectResponse:
    """Pick the best moderator for a dispute profile. Empty pool yields null."""
    moderator_id = await _scheduler.select_best_moderator(
        request.required_tier,
        request.severity,
        reported_id=request.reported_id,
    )
    return SelectResponse(moderator_id=moderator_id)


@router.post("/assignments/recommend", response_model=RecommendResponse)
async def recommend_moderators(request: RecommendRequest) -> RecommendResponse:
    """Ranked suggestions for human review."""
    moderators = await _scheduler.recommend_moderators(
        request.required_tier,
        request.severity,
        limit=request.limit,
    )
    return RecommendResponse(moderators=moderators)


@router.post("/disputes/{dispute_id}/reassign", response_model=AssignmentAction)
async def reassign_dispute(dispute_id: str, request: ReassignRequest) -> AssignmentAction:
    """Move a dispute to another moderator and record the action."""
    try:
        return await _scheduler.reassign(
            dispute_id, request.moderator_id, request.actor_id, request.reason
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ConflictOfInterestError, CapacityError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AssignmentCommitError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/disputes/{dispute_id}/assign", response_model=SelectResponse)
async def auto_assign_dispute(
    dispute_id: str, request: Optional[AutoAssignRequest] = None
) -> SelectResponse:
    """Assign an incoming dispute to the best available moderator."""
    actor_id = request.actor_id if request else None
    try:
        moderator_id = await _scheduler.auto_assign(dispute_id, actor_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DisputeStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AssignmentCommitError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return SelectResponse(moderator_id=moderator_id)


@router.post("/balance", response_model=BalanceReport)
async def run_balancer() -> BalanceReport:
    """Run one workload balancing pass now."""
    return await _scheduler.run_balancer_pass()


@router.get("/moderators/{moderator_id}/availability", response_model=ModeratorAvailability)
async def get_availability(moderator_id: str) -> ModeratorAvailability:
    return await _scheduler.get_availability(moderator_id)


@router.get("/stats", response_model=PoolStatistics)
async def get_stats() -> PoolStatistics:
    """Workload and utilization across the moderator pool."""
    return await _scheduler.get_pool_statistics()
