"""Domain errors raised by the assignment engine."""

from __future__ import annotations


class AssignmentError(Exception):
    """Base class for assignment failures that are terminal for one operation."""


class NotFoundError(AssignmentError):
    pass


class DisputeNotFoundError(NotFoundError):
    def __init__(self, dispute_id: str):
        super().__init__(f"Dispute not found: {dispute_id}")
        self.dispute_id = dispute_id


class ModeratorNotFoundError(NotFoundError):
    def __init__(self, moderator_id: str):
        super().__init__(f"Moderator not found: {moderator_id}")
        self.moderator_id = moderator_id


class ConflictOfInterestError(AssignmentError):
    def __init__(self, moderator_id: str, dispute_id: str):
        super().__init__(
            f"Moderator {moderator_id} has a conflict of interest on dispute {dispute_id}"
        )
        self.moderator_id = moderator_id
        self.dispute_id = dispute_id


class CapacityError(AssignmentError):
    def __init__(self, moderator_id: str, workload: int, capacity: int):
        super().__init__(
            f"Moderator {moderator_id} is at capacity ({workload}/{capacity})"
        )
        self.moderator_id = moderator_id
        self.workload = workload
        self.capacity = capacity


class DisputeStateError(AssignmentError):
    """The dispute is in a status that cannot take an assignment."""


class AssignmentCommitError(AssignmentError):
    """The store rejected the assignment update or its audit record."""
