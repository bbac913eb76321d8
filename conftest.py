"""Root conftest — adds the project root to the path and shares store fixtures."""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from dispute_assignment.models import Dispute, DisputeSeverity, DisputeStatus  # noqa: E402
from dispute_assignment.services.audit_log import AuditLog  # noqa: E402
from dispute_assignment.services.scheduler import AssignmentScheduler  # noqa: E402
from dispute_assignment.services.store import (  # noqa: E402
    InMemoryDisputeStore,
    InMemoryModeratorStore,
)

# Fixed reference time, far from the wall clock so the recency factor is
# only triggered where a test sets it up.
NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
LONG_AGO = NOW - timedelta(days=30)


@pytest.fixture
def moderator_store():
    return InMemoryModeratorStore()


@pytest.fixture
def dispute_store():
    return InMemoryDisputeStore()


@pytest.fixture
def audit_log():
    return AuditLog()


@pytest.fixture
def scheduler(moderator_store, dispute_store, audit_log):
    return AssignmentScheduler(moderator_store, dispute_store, audit_log)


@pytest.fixture
def make_dispute(dispute_store):
    """Factory that seeds disputes with stale timestamps unless told otherwise."""
    counter = {"n": 0}

    def _make(
        assigned_to=None,
        status=DisputeStatus.UNDER_REVIEW,
        severity=DisputeSeverity.LOW,
        reporter_id="user-reporter",
        reported_id="user-reported",
        order_id=None,
        created_at=None,
        updated_at=None,
    ):
        counter["n"] += 1
        created = created_at or LONG_AGO + timedelta(minutes=counter["n"])
        return dispute_store.add_dispute(Dispute(
            id=f"disp-{counter['n']:03d}",
            severity=severity,
            status=status,
            reporter_id=reporter_id,
            reported_id=reported_id,
            order_id=order_id,
            assigned_to=assigned_to,
            created_at=created,
            updated_at=updated_at or created,
        ))

    return _make
