"""
Command Runner - the updater's only boundary to external processes

Provides:
- The CommandRunner protocol callers inject into the updater
- SubprocessCommandRunner, the asyncio subprocess implementation
- UpdateDeadline and BudgetedCommandRunner, which enforce the overall
  time budget of an update and record every command as an UpdateStep
"""
import asyncio
import os
import signal
import time
from typing import List, Optional, Protocol

import structlog

from gateway_updater.models.update import CommandInvocation, CommandOutcome, UpdateStep
from gateway_updater.services.errors import CommandSpawnError, UpdateTimeoutError

logger = structlog.get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 600.0

# Exit code reported when the executable could not be spawned
SPAWN_FAILURE_EXIT_CODE = 127


class CommandRunner(Protocol):
    """Runs one external command; never raises for a nonzero exit"""

    async def run(self, invocation: CommandInvocation) -> CommandOutcome:
        ...


class SubprocessCommandRunner:
    """
    CommandRunner backed by asyncio subprocesses

    Each command runs in its own session so that a timeout or cancellation
    kills the whole process group, including grandchildren spawned by
    package managers.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        env: Optional[dict] = None,
    ):
        """
        Initialize SubprocessCommandRunner

        Args:
            default_timeout: Timeout for invocations that do not set one
            env: Extra environment variables merged over os.environ
        """
        self.default_timeout = default_timeout
        self.env = env

    def _build_env(self) -> Optional[dict]:
        if not self.env:
            return None
        merged = os.environ.copy()
        merged.update(self.env)
        return merged

    async def run(self, invocation: CommandInvocation) -> CommandOutcome:
        timeout = invocation.timeout if invocation.timeout is not None else self.default_timeout

        try:
            process = await asyncio.create_subprocess_exec(
                *invocation.argv,
                cwd=invocation.cwd,
                env=self._build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise CommandSpawnError(f"Failed to start {invocation.argv[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("command_timeout", command=invocation.display, timeout=timeout)
            await self._terminate(process)
            return CommandOutcome.timeout(timeout)
        except asyncio.CancelledError:
            logger.warning("command_cancelled", command=invocation.display)
            await self._terminate(process)
            raise

        return CommandOutcome(
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        """Kill the process group and reap the child"""
        if process.returncode is not None:
            return
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()


class UpdateDeadline:
    """Single monotonic deadline shared by every step of one update"""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        self._expires_at = time.monotonic() + timeout_seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


class BudgetedCommandRunner:
    """
    Wraps a caller-supplied runner with the update's deadline

    A command is not started once the budget is spent. Each command gets
    the remaining budget as its timeout and is cancelled if it overruns.
    Timeout-flavored outcomes become UpdateTimeoutError. Every command is
    recorded in ``steps``.
    """

    def __init__(
        self,
        runner: CommandRunner,
        deadline: UpdateDeadline,
        steps: Optional[List[UpdateStep]] = None,
    ):
        self.runner = runner
        self.deadline = deadline
        self.steps: List[UpdateStep] = steps if steps is not None else []

    async def run(self, invocation: CommandInvocation) -> CommandOutcome:
        remaining = self.deadline.remaining()
        if remaining <= 0:
            raise UpdateTimeoutError(
                f"Time budget of {self.deadline.timeout_seconds:g}s exhausted "
                f"before '{invocation.name or invocation.display}'"
            )

        timeout = remaining if invocation.timeout is None else min(invocation.timeout, remaining)
        budgeted = invocation.with_timeout(timeout)

        start = time.monotonic()
        try:
            outcome = await asyncio.wait_for(self.runner.run(budgeted), timeout=timeout)
        except asyncio.TimeoutError:
            outcome = CommandOutcome.timeout(timeout)
        except CommandSpawnError as e:
            logger.warning("command_spawn_failed", command=invocation.display, error=str(e))
            outcome = CommandOutcome(stderr=str(e), exit_code=SPAWN_FAILURE_EXIT_CODE)

        self.steps.append(UpdateStep.record(budgeted, outcome, time.monotonic() - start))

        if outcome.timed_out:
            raise UpdateTimeoutError(
                f"'{invocation.name or invocation.display}' exceeded the remaining "
                f"time budget ({timeout:.1f}s)",
                stderr=outcome.stderr,
            )

        if outcome.exit_code != 0:
            logger.debug(
                "command_failed",
                command=invocation.display,
                exit_code=outcome.exit_code,
                stderr=outcome.stderr.strip()[:500],
            )
        return outcome
