"""
Update Orchestrator - git-tag based self-update of a gateway installation

Coordinates the entire update workflow:
- Preflight: repository root, current commit, clean working tree
- Fetching refs and tags, then resolving the channel's target release
- Detached checkout of the target tag
- Restoring protected build assets tracked at the target
- Install/build/ui-build and a post-update health check
- Verifying HEAD, with automatic rollback to the originating commit on failure
"""
import time
from typing import Callable, List, Optional

import structlog

from gateway_updater.config import Settings, get_settings
from gateway_updater.logging_config import configure_logging, update_log
from gateway_updater.models.update import (
    UpdatePlan,
    UpdateRequest,
    UpdateResult,
    UpdateStatus,
    UpdateStep,
)
from gateway_updater.services.asset_restorer import AssetRestorer
from gateway_updater.services.build_pipeline import BuildPipeline, read_package_version
from gateway_updater.services.command_runner import BudgetedCommandRunner, UpdateDeadline
from gateway_updater.services.errors import (
    CheckoutError,
    NoCandidateVersionError,
    RepositoryStateError,
    RollbackFailedError,
    UpdateAlreadyInProgressError,
    UpdateError,
)
from gateway_updater.services.health_checker import HealthChecker
from gateway_updater.services.repository import RepositoryInspector
from gateway_updater.services.update_lock import UpdateLockRegistry, get_lock_registry
from gateway_updater.services.version_resolver import VersionResolver

logger = structlog.get_logger(__name__)

# Update states for state machine
UPDATE_STATES = [
    "idle",
    "preflight",
    "fetching",
    "planning_version",
    "checking_out",
    "restoring_assets",
    "building",
    "health_checking",
    "verifying_result",
    "rolling_back",
    "done",
]

ProgressCallback = Callable[[str, str], None]


def _short(commit: Optional[str]) -> str:
    return commit[:12] if commit else "unknown"


class UpdateRun:
    """State of one update attempt: current state, callback, steps and result"""

    def __init__(self, request: UpdateRequest, progress_callback: Optional[ProgressCallback] = None):
        self.request = request
        self.progress_callback = progress_callback
        self.state = "idle"
        self.steps: List[UpdateStep] = []
        self.result = UpdateResult(status=UpdateStatus.ERROR, message="", steps=self.steps)

    def set_state(self, state: str, message: str = "") -> None:
        self.state = state
        logger.info("update_state_changed", cwd=self.request.cwd, state=state, message=message or None)
        if self.progress_callback:
            self.progress_callback(state, message)


class UpdateOrchestrator:
    """
    Drives update attempts from preflight to a terminal UpdateResult

    Errors before the checkout leave the repository untouched and are
    reported without rollback. Errors from the checkout onwards roll back to
    the originating commit before being reported; a failed rollback is
    flagged on the result as needing manual intervention.

    One orchestrator may run updates for different directories concurrently;
    each attempt keeps its own UpdateRun.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        lock_registry: Optional[UpdateLockRegistry] = None,
    ):
        """
        Initialize UpdateOrchestrator

        Args:
            settings: Updater settings (defaults to the cached environment settings)
            lock_registry: Registry of per-directory locks (defaults to the process-wide one)
        """
        self.settings = settings or get_settings()
        self.lock_registry = lock_registry or get_lock_registry()
        self.version_resolver = VersionResolver()
        self._active_runs: List[UpdateRun] = []

    @property
    def state(self) -> str:
        """State of the most recently started attempt still running, else idle"""
        return self._active_runs[-1].state if self._active_runs else "idle"

    def _inspector(self, runner: BudgetedCommandRunner, cwd: str) -> RepositoryInspector:
        return RepositoryInspector(
            runner,
            cwd,
            git_binary=self.settings.git_binary,
            fetch_retries=self.settings.fetch_retries,
            fetch_retry_delay=self.settings.fetch_retry_delay_seconds,
        )

    async def run(
        self,
        request: UpdateRequest,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> UpdateResult:
        """
        Run one update attempt

        Args:
            request: Working directory, time budget, channel and command runner
            progress_callback: Optional callback(state, message) on each transition

        Returns:
            The terminal UpdateResult; update failures are reported, not raised
        """
        start = time.monotonic()
        run = UpdateRun(request, progress_callback)
        try:
            async with self.lock_registry.hold(request.cwd):
                self._active_runs.append(run)
                try:
                    with update_log(self.settings.log_file, self.settings.log_level):
                        result = await self._run_locked(run)
                finally:
                    self._active_runs.remove(run)
        except UpdateAlreadyInProgressError as e:
            result = UpdateResult(
                status=UpdateStatus.ERROR,
                message=e.message,
                failure=e.kind,
            )

        result.duration_seconds = round(time.monotonic() - start, 2)
        return result

    async def _run_locked(self, run: UpdateRun) -> UpdateResult:
        request = run.request
        result = run.result
        logger.info(
            "update_starting",
            cwd=request.cwd,
            channel=request.channel,
            timeout=request.timeout_seconds,
        )
        runner = BudgetedCommandRunner(request.runner, UpdateDeadline(request.timeout_seconds), run.steps)
        inspector = self._inspector(runner, request.cwd)

        # Nothing below mutates the repository, so failures need no rollback
        try:
            run.set_state("preflight", "Inspecting repository...")
            repo_state = await inspector.state(self.settings.protected_paths)
            root = repo_state.root
            from_commit = repo_state.commit
            result.from_commit = from_commit
            result.before_version = read_package_version(root)
            if repo_state.dirty:
                raise RepositoryStateError(
                    "Working tree has uncommitted changes; commit or stash them before updating"
                )

            run.set_state("fetching", "Fetching releases...")
            await inspector.fetch_all()

            run.set_state("planning_version", "Resolving target version...")
            plan = await self._plan(inspector, request.channel, from_commit)
            result.target_tag = plan.target_tag
        except UpdateError as e:
            logger.error("update_failed", failure=e.kind.value, error=e.message, rollback=False)
            return self._finish_error(run, e, rollback_attempted=False)
        except Exception as e:
            logger.exception("update_failed_unexpectedly", phase=run.state)
            return self._finish_error(run, UpdateError(f"Unexpected error: {e}"), rollback_attempted=False)

        if plan.target_commit == from_commit:
            result.status = UpdateStatus.NO_OP
            result.to_commit = from_commit
            result.after_version = result.before_version
            result.message = f"Already at {plan.target_tag} ({_short(from_commit)})"
            run.set_state("done", result.message)
            logger.info("update_not_needed", tag=plan.target_tag, commit=from_commit)
            return result

        # From here on every failure rolls back, including a failed checkout
        try:
            run.set_state("checking_out", f"Checking out {plan.target_tag}...")
            await inspector.checkout_detached(plan.target_tag)

            run.set_state("restoring_assets", "Restoring protected assets...")
            restorer = AssetRestorer(
                inspector,
                self.settings.protected_paths,
                entry_file=self.settings.asset_entry_file,
            )
            decisions = await restorer.restore(plan.target_commit)
            plan = UpdatePlan(
                target_tag=plan.target_tag,
                target_commit=plan.target_commit,
                from_commit=plan.from_commit,
                asset_tracked=any(decision.tracked for decision in decisions),
            )

            run.set_state("building", "Installing dependencies and building...")
            pipeline = BuildPipeline(
                runner,
                root,
                build_script=self.settings.build_script,
                ui_build_script=self.settings.ui_build_script,
            )
            await pipeline.run()

            run.set_state("health_checking", "Running health check...")
            checker = HealthChecker.for_package_manager(
                runner,
                root,
                pipeline.package_manager,
                cli_name=self.settings.cli_name,
                override=self.settings.health_check_command,
            )
            await checker.check()

            run.set_state("verifying_result", "Verifying checkout...")
            to_commit = await inspector.current_commit()
            if to_commit != plan.target_commit:
                raise CheckoutError(
                    f"HEAD is at {_short(to_commit)} after checkout, "
                    f"expected {_short(plan.target_commit)} for {plan.target_tag}"
                )
        except UpdateError as e:
            return await self._fail_and_rollback(run, root, e)
        except Exception as e:
            logger.exception("update_failed_unexpectedly", phase=run.state, target_tag=plan.target_tag)
            return await self._fail_and_rollback(run, root, UpdateError(f"Unexpected error: {e}"))

        result.status = UpdateStatus.OK
        result.to_commit = to_commit
        result.after_version = read_package_version(root)
        result.message = (
            f"Updated from {_short(from_commit)} to {plan.target_tag} ({_short(to_commit)})"
        )
        run.set_state("done", result.message)
        logger.info(
            "update_complete",
            from_commit=from_commit,
            to_commit=to_commit,
            tag=plan.target_tag,
            asset_tracked=plan.asset_tracked,
            before_version=result.before_version,
            after_version=result.after_version,
        )
        return result

    async def _plan(
        self,
        inspector: RepositoryInspector,
        channel: str,
        from_commit: str,
    ) -> UpdatePlan:
        tags = await inspector.list_tags(self.settings.tag_pattern)
        try:
            target = self.version_resolver.resolve(tags, channel)
        except NoCandidateVersionError:
            # Sitting on the only tag there is counts as up to date
            if len(tags) == 1 and await inspector.resolve_commit(tags[0]) == from_commit:
                return UpdatePlan(target_tag=tags[0], target_commit=from_commit, from_commit=from_commit)
            raise

        target_commit = await inspector.resolve_commit(target.name)
        return UpdatePlan(target_tag=target.name, target_commit=target_commit, from_commit=from_commit)

    async def _fail_and_rollback(self, run: UpdateRun, root: str, error: UpdateError) -> UpdateResult:
        result = run.result
        logger.error("update_failed", failure=error.kind.value, error=error.message, rollback=True)

        run.set_state("rolling_back", f"Update failed: {error.message}. Rolling back...")
        try:
            await self._rollback(run, root, result.from_commit)
        except RollbackFailedError as rollback_error:
            logger.critical(
                "rollback_failed",
                from_commit=result.from_commit,
                error=rollback_error.message,
            )
            result.rollback_succeeded = False
            result.to_commit = None
            return self._finish_error(
                run,
                error,
                rollback_attempted=True,
                suffix=f"{rollback_error.message}. Manual intervention required",
            )

        result.rollback_succeeded = True
        result.to_commit = result.from_commit
        logger.info("rollback_complete", commit=result.from_commit)
        return self._finish_error(
            run,
            error,
            rollback_attempted=True,
            suffix=f"Rolled back to {_short(result.from_commit)}",
        )

    async def _rollback(self, run: UpdateRun, root: str, from_commit: str) -> None:
        """
        Check the originating commit back out under a fresh time budget

        Raises:
            RollbackFailedError: If the checkout fails, times out or the runner raises
        """
        deadline = UpdateDeadline(self.settings.rollback_timeout_seconds)
        inspector = self._inspector(BudgetedCommandRunner(run.request.runner, deadline, run.steps), root)
        try:
            await inspector.checkout_detached(from_commit)
        except UpdateError as e:
            raise RollbackFailedError(
                f"Rollback to {_short(from_commit)} failed: {e.message}",
                stderr=e.stderr,
            ) from e
        except Exception as e:
            logger.exception("rollback_raised", from_commit=from_commit)
            raise RollbackFailedError(f"Rollback to {_short(from_commit)} failed: {e}") from e

    def _finish_error(
        self,
        run: UpdateRun,
        error: UpdateError,
        rollback_attempted: bool,
        suffix: Optional[str] = None,
    ) -> UpdateResult:
        result = run.result
        result.status = UpdateStatus.ERROR
        result.failure = error.kind
        result.rollback_attempted = rollback_attempted
        if not rollback_attempted:
            result.to_commit = result.from_commit
        result.message = f"{error.message}. {suffix}" if suffix else error.message
        run.set_state("done", result.message)
        return result


async def run_gateway_update(
    request: UpdateRequest,
    settings: Optional[Settings] = None,
    progress_callback: Optional[ProgressCallback] = None,
    lock_registry: Optional[UpdateLockRegistry] = None,
) -> UpdateResult:
    """
    Run one update attempt with a fresh orchestrator

    Configures logging from settings unless the host application already did.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    orchestrator = UpdateOrchestrator(settings=settings, lock_registry=lock_registry)
    return await orchestrator.run(request, progress_callback=progress_callback)
