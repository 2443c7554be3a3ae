"""
Update Models - value types for one gateway self-update attempt

Describes command invocations and their outcomes, repository state,
release tags, the resolved update plan, and the terminal update result.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from packaging.version import InvalidVersion, Version

if TYPE_CHECKING:
    from gateway_updater.config import Settings
    from gateway_updater.services.command_runner import CommandRunner

# Output tails kept on each recorded step
OUTPUT_TAIL_CHARS = 2000

# Exit code reported for commands aborted at their deadline
TIMEOUT_EXIT_CODE = 124


def _tail(text: str, limit: int = OUTPUT_TAIL_CHARS) -> str:
    return text if len(text) <= limit else text[-limit:]


class UpdateStatus(str, Enum):
    """Terminal status of an update attempt"""

    OK = "ok"
    NO_OP = "no-op"
    ERROR = "error"


class FailureKind(str, Enum):
    """Classified failure carried by an error result"""

    NOT_A_GIT_REPOSITORY = "not_a_git_repository"
    REPOSITORY_STATE = "repository_state_error"
    NETWORK = "network_error"
    VERSION_RESOLUTION = "version_resolution_error"
    CHECKOUT = "checkout_error"
    ASSET_RESTORE = "asset_restore_error"
    BUILD = "build_error"
    HEALTH_CHECK = "health_check_error"
    TIMEOUT = "timeout_error"
    UPDATE_ALREADY_IN_PROGRESS = "update_already_in_progress"
    ROLLBACK_FAILED = "rollback_failed"
    UNEXPECTED = "unexpected_error"


@dataclass(frozen=True)
class CommandInvocation:
    """One external command: argv tokens plus optional cwd and timeout"""

    argv: Tuple[str, ...]
    cwd: Optional[str] = None
    timeout: Optional[float] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("CommandInvocation requires at least one argument token")
        object.__setattr__(self, "argv", tuple(str(token) for token in self.argv))

    @property
    def display(self) -> str:
        return " ".join(self.argv)

    def with_timeout(self, timeout: Optional[float]) -> "CommandInvocation":
        return CommandInvocation(argv=self.argv, cwd=self.cwd, timeout=timeout, name=self.name)


@dataclass(frozen=True)
class CommandOutcome:
    """Captured result of a command; a nonzero exit code is a normal outcome"""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @classmethod
    def timeout(cls, timeout: Optional[float], stdout: str = "") -> "CommandOutcome":
        seconds = f"{timeout:.1f}s" if timeout is not None else "deadline"
        return cls(
            stdout=stdout,
            stderr=f"timeout: command exceeded {seconds}",
            exit_code=TIMEOUT_EXIT_CODE,
            timed_out=True,
        )


@dataclass(frozen=True)
class RepositoryState:
    """Snapshot of the repository taken during preflight"""

    root: str
    commit: str
    dirty: bool


@dataclass(frozen=True)
class ReleaseTag:
    """A release tag with its parsed version"""

    name: str
    version: Version

    @classmethod
    def parse(cls, name: str) -> Optional["ReleaseTag"]:
        """Parse a tag such as ``v1.2.3`` or ``v1.2.3-beta.1``; None if not a version"""
        label = name.strip()
        if label[:1] in ("v", "V"):
            label = label[1:]
        try:
            return cls(name=name.strip(), version=Version(label))
        except InvalidVersion:
            return None

    @property
    def is_prerelease(self) -> bool:
        return self.version.is_prerelease


@dataclass(frozen=True)
class UpdatePlan:
    """Resolved target plus everything needed to roll back"""

    target_tag: str
    target_commit: str
    from_commit: str
    asset_tracked: bool = False


@dataclass(frozen=True)
class UpdateRequest:
    """Inputs of one update attempt"""

    cwd: str
    timeout_seconds: float
    channel: str
    runner: "CommandRunner"

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    @classmethod
    def from_settings(
        cls,
        cwd: str,
        runner: "CommandRunner",
        settings: "Settings",
        timeout_seconds: Optional[float] = None,
        channel: Optional[str] = None,
    ) -> "UpdateRequest":
        """Build a request, filling unset fields from settings"""
        return cls(
            cwd=str(Path(cwd)),
            timeout_seconds=timeout_seconds or settings.default_timeout_seconds,
            channel=channel or settings.default_channel,
            runner=runner,
        )


@dataclass
class UpdateStep:
    """A command issued during the update, as recorded for the result"""

    name: str
    argv: List[str]
    cwd: Optional[str]
    exit_code: int
    duration_seconds: float
    stdout_tail: str = ""
    stderr_tail: str = ""
    timed_out: bool = False

    @classmethod
    def record(
        cls,
        invocation: CommandInvocation,
        outcome: CommandOutcome,
        duration_seconds: float,
    ) -> "UpdateStep":
        return cls(
            name=invocation.name or invocation.display,
            argv=list(invocation.argv),
            cwd=invocation.cwd,
            exit_code=outcome.exit_code,
            duration_seconds=round(duration_seconds, 3),
            stdout_tail=_tail(outcome.stdout),
            stderr_tail=_tail(outcome.stderr),
            timed_out=outcome.timed_out,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "argv": list(self.argv),
            "cwd": self.cwd,
            "exit_code": self.exit_code,
            "duration_seconds": self.duration_seconds,
            "stdout_tail": self.stdout_tail,
            "stderr_tail": self.stderr_tail,
            "timed_out": self.timed_out,
        }


@dataclass
class UpdateResult:
    """
    Terminal result of an update attempt

    ``no-op`` means the repository already sat at the resolved target, ``ok``
    means a verified transition, and ``error`` carries a classified failure.
    When a rollback was attempted, ``rollback_succeeded`` tells the caller
    whether the working directory is back at ``from_commit``.
    """

    status: UpdateStatus
    message: str
    from_commit: Optional[str] = None
    to_commit: Optional[str] = None
    failure: Optional[FailureKind] = None
    rollback_attempted: bool = False
    rollback_succeeded: Optional[bool] = None
    target_tag: Optional[str] = None
    before_version: Optional[str] = None
    after_version: Optional[str] = None
    steps: List[UpdateStep] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def needs_manual_intervention(self) -> bool:
        """True when the deployment may be in an indeterminate state"""
        return self.rollback_attempted and self.rollback_succeeded is False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "from": self.from_commit,
            "to": self.to_commit,
            "failure": self.failure.value if self.failure else None,
            "rollback_attempted": self.rollback_attempted,
            "rollback_succeeded": self.rollback_succeeded,
            "needs_manual_intervention": self.needs_manual_intervention,
            "target_tag": self.target_tag,
            "before_version": self.before_version,
            "after_version": self.after_version,
            "steps": [step.to_dict() for step in self.steps],
            "duration_seconds": self.duration_seconds,
        }
