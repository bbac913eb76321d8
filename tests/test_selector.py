"""Tests for moderator selection, recommendation and reassignment."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from dispute_assignment.engine.selector import AssignmentSelector, KeyedLocks
from dispute_assignment.errors import (
    AssignmentCommitError,
    CapacityError,
    ConflictOfInterestError,
    DisputeNotFoundError,
    DisputeStateError,
    ModeratorNotFoundError,
)
from dispute_assignment.models import (
    ActionType,
    Dispute,
    DisputeSeverity,
    DisputeStatus,
    Moderator,
    ModeratorTier,
    Order,
)
from dispute_assignment.services.scheduler import AssignmentScheduler
from dispute_assignment.services.store import InMemoryDisputeStore

NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def pool(moderator_store, make_dispute):
    """Moderator A is fast, accurate and idle; B is slow and holds 3 disputes."""
    moderator_store.add_moderator(Moderator(
        moderator_id="mod-a",
        tier=ModeratorTier.COMMUNITY,
        accuracy_rate=0.9,
        average_resolution_hours=20,
    ))
    moderator_store.add_moderator(Moderator(
        moderator_id="mod-b",
        tier=ModeratorTier.COMMUNITY,
        accuracy_rate=0.5,
        average_resolution_hours=80,
    ))
    for _ in range(3):
        make_dispute(assigned_to="mod-b")
    return moderator_store


class FailingAuditSink:
    async def append(self, dispute_id, performed_by, action_type, details):
        raise RuntimeError("audit store unavailable")


class YieldingDisputeStore(InMemoryDisputeStore):
    """Gives up the event loop before every count, like a networked store."""

    async def count_disputes(self, assigned_to, statuses):
        await asyncio.sleep(0)
        return await super().count_disputes(assigned_to, statuses)


@pytest.fixture
def nearly_full(moderator_store, audit_log):
    """mod-full holds 4 of 5 COMMUNITY slots behind a store that yields."""
    store = YieldingDisputeStore()
    moderator_store.add_moderator(Moderator(moderator_id="mod-full"))
    moderator_store.add_moderator(Moderator(moderator_id="mod-other"))
    for i in range(4):
        store.add_dispute(Dispute(
            id=f"held-{i}", reporter_id="u1", reported_id="u2",
            status=DisputeStatus.UNDER_REVIEW, assigned_to="mod-full",
        ))
    return store, AssignmentScheduler(moderator_store, store, audit_log)


class TestSelectBest:
    @pytest.mark.asyncio
    async def test_picks_highest_score(self, scheduler, pool):
        result = await scheduler.select_best_moderator(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, now=NOW
        )
        assert result == "mod-a"

    @pytest.mark.asyncio
    async def test_scenario_scores(self, scheduler, pool):
        ranked = await scheduler.recommend_moderators(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, now=NOW
        )
        scores = {w.moderator_id: w.score for w in ranked}
        assert scores["mod-a"] == pytest.approx(143)
        assert scores["mod-b"] == pytest.approx(85)

    @pytest.mark.asyncio
    async def test_reported_party_excluded(self, scheduler, moderator_store):
        moderator_store.add_moderator(Moderator(moderator_id="mod-only"))
        result = await scheduler.select_best_moderator(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, reported_id="mod-only", now=NOW
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_empty_pool(self, scheduler):
        result = await scheduler.select_best_moderator(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, now=NOW
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_ineligible_tiers_filtered(self, scheduler, pool):
        result = await scheduler.select_best_moderator(
            ModeratorTier.SENIOR, DisputeSeverity.HIGH, now=NOW
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_tie_goes_to_first_enumerated(self, scheduler, moderator_store):
        for mid in ("mod-1", "mod-2", "mod-3"):
            moderator_store.add_moderator(Moderator(moderator_id=mid, accuracy_rate=0.7))
        result = await scheduler.select_best_moderator(
            ModeratorTier.COMMUNITY, DisputeSeverity.MEDIUM, now=NOW
        )
        assert result == "mod-1"

    @pytest.mark.asyncio
    async def test_recent_activity_breaks_tie(self, scheduler, moderator_store, make_dispute):
        moderator_store.add_moderator(Moderator(moderator_id="mod-1"))
        moderator_store.add_moderator(Moderator(moderator_id="mod-2"))
        make_dispute(
            assigned_to="mod-2",
            status=DisputeStatus.RESOLVED,
            updated_at=NOW - timedelta(hours=2),
        )
        result = await scheduler.select_best_moderator(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, now=NOW
        )
        assert result == "mod-2"

    @pytest.mark.asyncio
    async def test_naive_timestamps_read_as_utc(self, scheduler, moderator_store, make_dispute):
        moderator_store.add_moderator(Moderator(moderator_id="mod-1"))
        moderator_store.add_moderator(Moderator(moderator_id="mod-2"))
        make_dispute(
            assigned_to="mod-2",
            status=DisputeStatus.RESOLVED,
            updated_at=datetime(2025, 1, 15, 10, 0, 0),
        )
        result = await scheduler.select_best_moderator(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, now=datetime(2025, 1, 15, 12, 0, 0)
        )
        assert result == "mod-2"

    @pytest.mark.asyncio
    async def test_zero_hour_recency_window(self, scheduler, moderator_store, dispute_store, audit_log, make_dispute):
        selector = AssignmentSelector(
            moderator_store, dispute_store, audit_log,
            scheduler.conflicts, scheduler.availability,
            recent_activity_hours=0,
        )
        assert selector.recent_activity == timedelta(0)

        moderator_store.add_moderator(Moderator(moderator_id="mod-1"))
        moderator_store.add_moderator(Moderator(moderator_id="mod-2"))
        make_dispute(
            assigned_to="mod-2",
            status=DisputeStatus.RESOLVED,
            updated_at=NOW - timedelta(hours=2),
        )
        result = await selector.select_best_moderator(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, now=NOW
        )
        assert result == "mod-1"


class TestRecommend:
    @pytest.mark.asyncio
    async def test_descending_and_limited(self, scheduler, pool, moderator_store):
        moderator_store.add_moderator(Moderator(moderator_id="mod-admin", tier=ModeratorTier.ADMIN))
        ranked = await scheduler.recommend_moderators(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, limit=2, now=NOW
        )
        assert [w.moderator_id for w in ranked] == ["mod-a", "mod-admin"]
        assert ranked[0].score >= ranked[1].score

    @pytest.mark.asyncio
    async def test_stable_ties(self, scheduler, moderator_store):
        for mid in ("mod-z", "mod-y", "mod-x"):
            moderator_store.add_moderator(Moderator(moderator_id=mid))
        ranked = await scheduler.recommend_moderators(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, now=NOW
        )
        assert [w.moderator_id for w in ranked] == ["mod-z", "mod-y", "mod-x"]

    @pytest.mark.asyncio
    async def test_zero_limit(self, scheduler, pool):
        assert await scheduler.recommend_moderators(
            ModeratorTier.COMMUNITY, DisputeSeverity.LOW, limit=0
        ) == []


class TestReassign:
    @pytest.mark.asyncio
    async def test_reassign_records_action(self, scheduler, pool, make_dispute, dispute_store, audit_log):
        dispute = make_dispute(assigned_to="mod-b")
        action = await scheduler.reassign(dispute.id, "mod-a", "admin-1", "manual")

        assert action.action_type == ActionType.ASSIGNED
        assert action.performed_by == "admin-1"
        assert action.details == {"from": "mod-b", "to": "mod-a", "reason": "manual"}
        assert (await dispute_store.get_dispute(dispute.id)).assigned_to == "mod-a"
        assert audit_log.get_actions_for_dispute(dispute.id) == [action]

    @pytest.mark.asyncio
    async def test_missing_dispute(self, scheduler, pool):
        with pytest.raises(DisputeNotFoundError):
            await scheduler.reassign("nope", "mod-a", "admin-1", "manual")

    @pytest.mark.asyncio
    async def test_missing_moderator(self, scheduler, pool, make_dispute):
        dispute = make_dispute(assigned_to="mod-b")
        with pytest.raises(ModeratorNotFoundError):
            await scheduler.reassign(dispute.id, "mod-ghost", "admin-1", "manual")

    @pytest.mark.asyncio
    async def test_conflict_blocks(self, scheduler, pool, make_dispute, dispute_store, audit_log):
        dispute = make_dispute(assigned_to="mod-b", reported_id="mod-a")
        with pytest.raises(ConflictOfInterestError):
            await scheduler.reassign(dispute.id, "mod-a", "admin-1", "manual")
        assert (await dispute_store.get_dispute(dispute.id)).assigned_to == "mod-b"
        assert audit_log.total_actions == 0

    @pytest.mark.asyncio
    async def test_order_party_conflict_blocks(self, scheduler, pool, make_dispute, dispute_store):
        dispute_store.add_order(Order(id="order-1", buyer_id="user-x", seller_id="mod-a"))
        dispute = make_dispute(assigned_to="mod-b", order_id="order-1")
        with pytest.raises(ConflictOfInterestError):
            await scheduler.reassign(dispute.id, "mod-a", "admin-1", "manual")

    @pytest.mark.asyncio
    async def test_capacity_blocks(self, scheduler, pool, make_dispute, dispute_store, audit_log):
        for _ in range(5):
            make_dispute(assigned_to="mod-a")
        dispute = make_dispute(assigned_to="mod-b")

        with pytest.raises(CapacityError) as exc_info:
            await scheduler.reassign(dispute.id, "mod-a", "admin-1", "manual")

        assert exc_info.value.capacity == 5
        assert (await dispute_store.get_dispute(dispute.id)).assigned_to == "mod-b"
        assert audit_log.total_actions == 0

    @pytest.mark.asyncio
    async def test_failed_audit_rolls_back(self, moderator_store, dispute_store, pool, make_dispute):
        scheduler = AssignmentScheduler(moderator_store, dispute_store, FailingAuditSink())
        dispute = make_dispute(assigned_to="mod-b")

        with pytest.raises(AssignmentCommitError):
            await scheduler.reassign(dispute.id, "mod-a", "admin-1", "manual")

        assert (await dispute_store.get_dispute(dispute.id)).assigned_to == "mod-b"

    @pytest.mark.asyncio
    async def test_concurrent_reassigns_serialize(self, scheduler, pool, moderator_store, make_dispute, audit_log):
        moderator_store.add_moderator(Moderator(moderator_id="mod-c"))
        dispute = make_dispute(assigned_to="mod-b")

        await asyncio.gather(
            scheduler.reassign(dispute.id, "mod-a", "admin-1", "first"),
            scheduler.reassign(dispute.id, "mod-c", "admin-2", "second"),
        )

        actions = audit_log.get_actions_for_dispute(dispute.id)
        assert len(actions) == 2
        assert actions[0].details["from"] == "mod-b"
        assert actions[1].details["from"] == actions[0].details["to"]

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self, scheduler, pool, make_dispute):
        for i in range(1000):
            with pytest.raises(DisputeNotFoundError):
                await scheduler.reassign(f"ghost-{i}", "mod-a", "admin-1", "manual")
        dispute = make_dispute(assigned_to="mod-b")
        await scheduler.reassign(dispute.id, "mod-a", "admin-1", "manual")

        assert len(scheduler.selector._dispute_locks) == 0
        assert len(scheduler.selector._moderator_locks) == 0

    @pytest.mark.asyncio
    async def test_concurrent_reassigns_respect_capacity(self, nearly_full):
        store, scheduler = nearly_full
        for i in range(2):
            store.add_dispute(Dispute(
                id=f"incoming-{i}", reporter_id="u1", reported_id="u2",
                status=DisputeStatus.UNDER_REVIEW, assigned_to="mod-other",
            ))

        results = await asyncio.gather(
            scheduler.reassign("incoming-0", "mod-full", "admin-1", "manual"),
            scheduler.reassign("incoming-1", "mod-full", "admin-2", "manual"),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], CapacityError)
        assert await store.count_disputes("mod-full", [DisputeStatus.UNDER_REVIEW]) == 5


class TestAutoAssign:
    @pytest.mark.asyncio
    async def test_assigns_and_opens_review(self, scheduler, pool, make_dispute, dispute_store, audit_log):
        dispute = make_dispute(status=DisputeStatus.OPEN)
        chosen = await scheduler.auto_assign(dispute.id)

        stored = await dispute_store.get_dispute(dispute.id)
        assert chosen == "mod-a"
        assert stored.assigned_to == "mod-a"
        assert stored.status == DisputeStatus.UNDER_REVIEW
        [action] = audit_log.get_actions_for_dispute(dispute.id)
        assert action.performed_by == "SYSTEM"
        assert action.details == {"from": None, "to": "mod-a", "reason": "auto_assignment"}

    @pytest.mark.asyncio
    async def test_skips_conflicted_candidate(self, scheduler, pool, make_dispute):
        dispute = make_dispute(status=DisputeStatus.OPEN, reporter_id="mod-a")
        assert await scheduler.auto_assign(dispute.id) == "mod-b"

    @pytest.mark.asyncio
    async def test_skips_full_candidate(self, scheduler, pool, make_dispute):
        for _ in range(5):
            make_dispute(assigned_to="mod-a", status=DisputeStatus.ESCALATED)
        dispute = make_dispute(status=DisputeStatus.OPEN)
        assert await scheduler.auto_assign(dispute.id) == "mod-b"

    @pytest.mark.asyncio
    async def test_uses_required_tier(self, scheduler, pool, moderator_store, make_dispute):
        moderator_store.add_moderator(Moderator(moderator_id="mod-senior", tier=ModeratorTier.SENIOR))
        dispute = make_dispute(status=DisputeStatus.OPEN, severity=DisputeSeverity.HIGH)
        assert await scheduler.auto_assign(dispute.id) == "mod-senior"

    @pytest.mark.asyncio
    async def test_empty_pool_returns_none(self, scheduler, make_dispute, audit_log):
        dispute = make_dispute(status=DisputeStatus.OPEN, severity=DisputeSeverity.CRITICAL)
        assert await scheduler.auto_assign(dispute.id) is None
        assert audit_log.total_actions == 0

    @pytest.mark.asyncio
    async def test_terminal_dispute_rejected(self, scheduler, pool, make_dispute):
        dispute = make_dispute(status=DisputeStatus.RESOLVED)
        with pytest.raises(DisputeStateError):
            await scheduler.auto_assign(dispute.id)

    @pytest.mark.asyncio
    async def test_missing_dispute(self, scheduler, pool):
        with pytest.raises(DisputeNotFoundError):
            await scheduler.auto_assign("nope")

    @pytest.mark.asyncio
    async def test_current_moderator_kept_without_audit(self, scheduler, pool, make_dispute, dispute_store, audit_log):
        dispute = make_dispute(assigned_to="mod-a", status=DisputeStatus.UNDER_REVIEW)

        assert await scheduler.auto_assign(dispute.id) == "mod-a"

        assert audit_log.total_actions == 0
        stored = await dispute_store.get_dispute(dispute.id)
        assert stored.assigned_to == "mod-a"
        assert stored.updated_at == dispute.updated_at

    @pytest.mark.asyncio
    async def test_concurrent_auto_assigns_respect_capacity(self, nearly_full):
        store, scheduler = nearly_full
        for i in range(2):
            store.add_dispute(Dispute(
                id=f"incoming-{i}", reporter_id="mod-other", reported_id="u2",
                status=DisputeStatus.OPEN,
            ))

        results = await asyncio.gather(
            scheduler.auto_assign("incoming-0"),
            scheduler.auto_assign("incoming-1"),
        )

        assert sorted(results, key=lambda r: r is None) == ["mod-full", None]
        assert await store.count_disputes("mod-full", [DisputeStatus.UNDER_REVIEW]) == 5
        assert len(scheduler.selector._moderator_locks) == 0


class TestKeyedLocks:
    @pytest.mark.asyncio
    async def test_entry_kept_while_waiting(self):
        locks = KeyedLocks()
        release = asyncio.Event()
        order = []

        async def holder(name):
            async with locks.hold("d1"):
                order.append(name)
                await release.wait()

        first = asyncio.create_task(holder("first"))
        second = asyncio.create_task(holder("second"))
        await asyncio.sleep(0)
        assert len(locks) == 1
        assert order == ["first"]

        release.set()
        await asyncio.gather(first, second)
        assert order == ["first", "second"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_entry_dropped_on_error(self):
        locks = KeyedLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("d1"):
                raise RuntimeError("boom")
        assert len(locks) == 0
