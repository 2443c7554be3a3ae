"""
Update error taxonomy

Every update failure is an UpdateError subclass carrying the FailureKind
reported on the terminal UpdateResult.
"""
from typing import Optional

from gateway_updater.models.update import FailureKind


class UpdateError(Exception):
    """Base exception for update errors"""

    kind: FailureKind = FailureKind.UNEXPECTED

    def __init__(self, message: str, *, stderr: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stderr = stderr


class NotAGitRepositoryError(UpdateError):
    """Raised when the working directory is not inside a git repository"""

    kind = FailureKind.NOT_A_GIT_REPOSITORY


class RepositoryStateError(UpdateError):
    """Raised when HEAD or cleanliness cannot be established, or the tree is dirty"""

    kind = FailureKind.REPOSITORY_STATE


class NetworkError(UpdateError):
    """Raised when fetching refs and tags fails after retrying"""

    kind = FailureKind.NETWORK


class VersionResolutionError(UpdateError):
    """Raised when no target version can be resolved"""

    kind = FailureKind.VERSION_RESOLUTION


class NoCandidateVersionError(VersionResolutionError):
    """Raised when no tag qualifies for the requested channel"""

    pass


class CheckoutError(UpdateError):
    """Raised when a detached checkout fails"""

    kind = FailureKind.CHECKOUT


class AssetRestoreError(UpdateError):
    """Raised when a protected asset path cannot be restored from the target"""

    kind = FailureKind.ASSET_RESTORE


class BuildError(UpdateError):
    """Raised when an install or build command fails"""

    kind = FailureKind.BUILD

    def __init__(self, message: str, *, step: str, stderr: Optional[str] = None):
        super().__init__(message, stderr=stderr)
        self.step = step


class HealthCheckError(UpdateError):
    """Raised when the post-update diagnostic fails"""

    kind = FailureKind.HEALTH_CHECK


class UpdateTimeoutError(UpdateError):
    """Raised when the update exceeds its time budget"""

    kind = FailureKind.TIMEOUT


class UpdateAlreadyInProgressError(UpdateError):
    """Raised when another update holds the working directory lock"""

    kind = FailureKind.UPDATE_ALREADY_IN_PROGRESS


class RollbackFailedError(UpdateError):
    """Raised when rollback fails - requires manual intervention"""

    kind = FailureKind.ROLLBACK_FAILED


class CommandSpawnError(Exception):
    """Raised by a CommandRunner when the command could not be started at all"""

    pass
