"""
Gateway Updater - Service Layer

This package contains the update procedure and its collaborators.
"""

from gateway_updater.services.asset_restorer import AssetDecision, AssetRestorer
from gateway_updater.services.build_pipeline import BuildPipeline, detect_package_manager
from gateway_updater.services.command_runner import (
    BudgetedCommandRunner,
    CommandRunner,
    SubprocessCommandRunner,
    UpdateDeadline,
)
from gateway_updater.services.errors import (
    AssetRestoreError,
    BuildError,
    CheckoutError,
    CommandSpawnError,
    HealthCheckError,
    NetworkError,
    NoCandidateVersionError,
    NotAGitRepositoryError,
    RepositoryStateError,
    RollbackFailedError,
    UpdateAlreadyInProgressError,
    UpdateError,
    UpdateTimeoutError,
    VersionResolutionError,
)
from gateway_updater.services.health_checker import HealthChecker
from gateway_updater.services.repository import RepositoryInspector
from gateway_updater.services.update_lock import UpdateLockRegistry, get_lock_registry
from gateway_updater.services.update_orchestrator import UpdateOrchestrator, run_gateway_update
from gateway_updater.services.version_resolver import VersionResolver

__all__ = [
    "AssetDecision",
    "AssetRestorer",
    "AssetRestoreError",
    "BudgetedCommandRunner",
    "BuildError",
    "BuildPipeline",
    "CheckoutError",
    "CommandRunner",
    "CommandSpawnError",
    "HealthCheckError",
    "HealthChecker",
    "NetworkError",
    "NoCandidateVersionError",
    "NotAGitRepositoryError",
    "RepositoryInspector",
    "RepositoryStateError",
    "RollbackFailedError",
    "SubprocessCommandRunner",
    "UpdateAlreadyInProgressError",
    "UpdateDeadline",
    "UpdateError",
    "UpdateLockRegistry",
    "UpdateOrchestrator",
    "UpdateTimeoutError",
    "VersionResolutionError",
    "VersionResolver",
    "detect_package_manager",
    "get_lock_registry",
    "run_gateway_update",
]
