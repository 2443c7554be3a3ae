"""
Health Checker - post-update diagnostic

Catches updates that checked out and built fine but cannot run, e.g.
because runtime configuration is missing.
"""
from typing import List, Optional, Sequence

import structlog

from gateway_updater.models.update import CommandInvocation
from gateway_updater.services.build_pipeline import script_command
from gateway_updater.services.command_runner import CommandRunner
from gateway_updater.services.errors import HealthCheckError

logger = structlog.get_logger(__name__)


def doctor_command(package_manager: str, cli_name: str = "gateway") -> List[str]:
    """Default non-interactive diagnostic: ``<pm> <cli> doctor --non-interactive``"""
    return script_command(package_manager, cli_name, "doctor", "--non-interactive")


class HealthChecker:
    """Runs a single diagnostic command and maps its exit code to pass/fail"""

    def __init__(self, runner: CommandRunner, root: str, command: Sequence[str]):
        if not command:
            raise ValueError("Health check command must not be empty")
        self.runner = runner
        self.root = root
        self.command = list(command)

    @classmethod
    def for_package_manager(
        cls,
        runner: CommandRunner,
        root: str,
        package_manager: str,
        cli_name: str = "gateway",
        override: Optional[Sequence[str]] = None,
    ) -> "HealthChecker":
        command = list(override) if override else doctor_command(package_manager, cli_name)
        return cls(runner, root, command)

    async def check(self) -> None:
        """
        Raises:
            HealthCheckError: If the diagnostic exits nonzero
        """
        outcome = await self.runner.run(
            CommandInvocation(argv=tuple(self.command), cwd=self.root, name="health check")
        )
        if outcome.exit_code != 0:
            detail = outcome.stderr.strip() or outcome.stdout.strip() or "no output"
            logger.error("health_check_failed", exit_code=outcome.exit_code)
            raise HealthCheckError(
                f"Health check failed (exit {outcome.exit_code}): {detail}",
                stderr=outcome.stderr,
            )
        logger.info("health_check_passed")
