"""
Asset Restorer - restores protected build artifacts only when git has them

A protected asset directory (for example a prebuilt control UI bundle) may
or may not be committed at the target release. Tracked assets are restored
from the target commit; untracked ones are left for the build pipeline to
regenerate, and git is never asked for a path the commit does not contain.
"""
from dataclasses import dataclass
from typing import List, Sequence

import structlog

from gateway_updater.services.repository import RepositoryInspector

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AssetDecision:
    """Whether a protected path is tracked at the target commit"""

    path: str
    entry_file: str
    tracked: bool


class AssetRestorer:
    """Plans and applies restoration of protected asset paths"""

    def __init__(
        self,
        inspector: RepositoryInspector,
        protected_paths: Sequence[str],
        entry_file: str = "index.html",
    ):
        self.inspector = inspector
        self.protected_paths = [path for path in protected_paths if path]
        self.entry_file = entry_file

    async def plan(self, target_commit: str) -> List[AssetDecision]:
        """Probe each protected path's entry file at ``target_commit``"""
        decisions = []
        for path in self.protected_paths:
            probe = f"{path.rstrip('/')}/{self.entry_file}"
            tracked = await self.inspector.is_tracked_at_commit(target_commit, probe)
            decisions.append(AssetDecision(path=path, entry_file=self.entry_file, tracked=tracked))
        return decisions

    async def apply(self, target_commit: str, decisions: List[AssetDecision]) -> None:
        """
        Restore the tracked paths among ``decisions`` from ``target_commit``

        Raises:
            AssetRestoreError: If restoring a tracked path fails
        """
        for decision in decisions:
            if decision.tracked:
                logger.info("asset_restoring", path=decision.path, commit=target_commit)
                await self.inspector.restore_path(target_commit, decision.path)
            else:
                logger.info("asset_left_for_rebuild", path=decision.path, commit=target_commit)

    async def restore(self, target_commit: str) -> List[AssetDecision]:
        """Plan and apply in one step; returns the decisions taken"""
        decisions = await self.plan(target_commit)
        await self.apply(target_commit, decisions)
        return decisions
