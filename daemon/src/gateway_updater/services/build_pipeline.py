"""
Build Pipeline - produces a runnable gateway after checkout

Runs the dependency install, the primary build and the UI build in that
order, using whichever package manager the checkout declares.
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from gateway_updater.models.update import CommandInvocation
from gateway_updater.services.command_runner import CommandRunner
from gateway_updater.services.errors import BuildError

logger = structlog.get_logger(__name__)

PACKAGE_MANAGERS = ("pnpm", "bun", "npm")

# Lockfiles checked when package.json does not declare a packageManager
LOCKFILES = [
    ("pnpm-lock.yaml", "pnpm"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
]


def read_package_json(root: str) -> Optional[Dict[str, Any]]:
    """Load ``package.json`` at ``root``; None if missing or unreadable"""
    package_json = Path(root) / "package.json"
    if not package_json.exists():
        return None
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("package_json_unreadable", path=str(package_json), error=str(e))
        return None
    return data if isinstance(data, dict) else None


def read_package_version(root: str) -> Optional[str]:
    """The ``version`` field of ``package.json``, if any"""
    data = read_package_json(root)
    if not data:
        return None
    version = data.get("version")
    return str(version) if version else None


def detect_package_manager(root: str) -> str:
    """
    Detect the package manager for the checkout at ``root``

    The ``packageManager`` field (e.g. ``pnpm@8.0.0``) wins, then lockfiles,
    then npm.
    """
    data = read_package_json(root) or {}
    declared = str(data.get("packageManager") or "").split("@", 1)[0].strip()
    if declared in PACKAGE_MANAGERS:
        return declared

    for lockfile, manager in LOCKFILES:
        if (Path(root) / lockfile).exists():
            return manager
    return "npm"


def script_command(manager: str, script: str, *args: str) -> List[str]:
    """Argv running a package.json script with the given manager"""
    if manager == "npm":
        argv = ["npm", "run", script]
        if args:
            argv.extend(["--", *args])
        return argv
    return [manager, script, *args]


@dataclass(frozen=True)
class BuildStep:
    name: str
    argv: List[str]


class BuildPipeline:
    """Runs install/build/ui-build, aborting on the first failure"""

    def __init__(
        self,
        runner: CommandRunner,
        root: str,
        package_manager: Optional[str] = None,
        build_script: str = "build",
        ui_build_script: str = "ui:build",
    ):
        self.runner = runner
        self.root = root
        self.package_manager = package_manager or detect_package_manager(root)
        self.build_script = build_script
        self.ui_build_script = ui_build_script

    def steps(self) -> List[BuildStep]:
        manager = self.package_manager
        return [
            BuildStep(name="deps install", argv=[manager, "install"]),
            BuildStep(name="build", argv=script_command(manager, self.build_script)),
            BuildStep(name="ui build", argv=script_command(manager, self.ui_build_script)),
        ]

    async def run(self) -> None:
        """
        Run every build step in order

        Raises:
            BuildError: On the first step that exits nonzero
        """
        logger.info("build_starting", package_manager=self.package_manager, root=self.root)
        for step in self.steps():
            outcome = await self.runner.run(
                CommandInvocation(argv=tuple(step.argv), cwd=self.root, name=step.name)
            )
            if outcome.exit_code != 0:
                stderr = outcome.stderr.strip()
                logger.error("build_step_failed", step=step.name, exit_code=outcome.exit_code)
                raise BuildError(
                    f"{step.name} failed (exit {outcome.exit_code}): {stderr or 'no output'}",
                    step=step.name,
                    stderr=outcome.stderr,
                )
            logger.info("build_step_complete", step=step.name)
