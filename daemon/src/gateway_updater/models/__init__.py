"""
Gateway Updater - Data Models

Plain dataclasses describing one update attempt.
"""

from gateway_updater.models.update import (
    CommandInvocation,
    CommandOutcome,
    FailureKind,
    ReleaseTag,
    RepositoryState,
    UpdatePlan,
    UpdateRequest,
    UpdateResult,
    UpdateStatus,
    UpdateStep,
)

__all__ = [
    "CommandInvocation",
    "CommandOutcome",
    "FailureKind",
    "ReleaseTag",
    "RepositoryState",
    "UpdatePlan",
    "UpdateRequest",
    "UpdateResult",
    "UpdateStatus",
    "UpdateStep",
]
