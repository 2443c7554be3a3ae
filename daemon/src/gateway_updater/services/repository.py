"""
Repository Inspector - git-level queries and mutations for the updater

All git commands are issued as ``git -C <dir> ...`` through a CommandRunner,
so the inspector never shells out itself.
"""
import asyncio
from typing import List, Optional, Sequence

import structlog

from gateway_updater.models.update import CommandInvocation, CommandOutcome, RepositoryState
from gateway_updater.services.command_runner import CommandRunner
from gateway_updater.services.errors import (
    AssetRestoreError,
    CheckoutError,
    NetworkError,
    NotAGitRepositoryError,
    RepositoryStateError,
    VersionResolutionError,
)

logger = structlog.get_logger(__name__)


def _first_line(text: str) -> str:
    lines = text.strip().splitlines()
    return lines[0].strip() if lines else ""


def exclude_pathspecs(paths: Sequence[str]) -> List[str]:
    """Turn relative paths into git exclude pathspecs (``:!dist/control-ui/``)"""
    return [f":!{path}" for path in paths if path]


class RepositoryInspector:
    """
    Answers git questions about the repository containing ``cwd``

    ``root`` starts as the working directory and is replaced by the
    repository top-level once ``root()`` has resolved it.
    """

    def __init__(
        self,
        runner: CommandRunner,
        cwd: str,
        git_binary: str = "git",
        fetch_retries: int = 1,
        fetch_retry_delay: float = 0.0,
    ):
        self.runner = runner
        self.cwd = cwd
        self.git_binary = git_binary
        self.fetch_retries = fetch_retries
        self.fetch_retry_delay = fetch_retry_delay
        self._root: Optional[str] = None

    @property
    def git_dir(self) -> str:
        return self._root or self.cwd

    async def _git(
        self,
        *args: str,
        name: Optional[str] = None,
        directory: Optional[str] = None,
    ) -> CommandOutcome:
        invocation = CommandInvocation(
            argv=(self.git_binary, "-C", directory or self.git_dir, *args),
            name=name,
        )
        return await self.runner.run(invocation)

    async def root(self) -> str:
        """Resolve the top-level directory of the repository containing cwd"""
        outcome = await self._git("rev-parse", "--show-toplevel", name="git root", directory=self.cwd)
        root = _first_line(outcome.stdout)
        if outcome.exit_code != 0 or not root:
            raise NotAGitRepositoryError(
                f"{self.cwd} is not inside a git repository",
                stderr=outcome.stderr,
            )
        self._root = root
        return root

    async def current_commit(self) -> str:
        """Resolve the commit HEAD points at"""
        outcome = await self._git("rev-parse", "HEAD", name="git rev-parse HEAD")
        commit = _first_line(outcome.stdout)
        if outcome.exit_code != 0 or not commit:
            raise RepositoryStateError(
                f"Unable to resolve current commit: {outcome.stderr.strip() or 'empty output'}",
                stderr=outcome.stderr,
            )
        return commit

    async def resolve_commit(self, ref: str) -> str:
        """Resolve a ref (usually a tag) to the commit it names"""
        outcome = await self._git("rev-parse", f"{ref}^{{commit}}", name=f"git rev-parse {ref}")
        commit = _first_line(outcome.stdout)
        if outcome.exit_code != 0 or not commit:
            raise VersionResolutionError(
                f"Unable to resolve {ref} to a commit",
                stderr=outcome.stderr,
            )
        return commit

    async def is_clean(self, exclude_paths: Sequence[str] = ()) -> bool:
        """True iff ``git status --porcelain`` reports nothing outside exclude_paths"""
        args = ["status", "--porcelain"]
        pathspecs = exclude_pathspecs(exclude_paths)
        if pathspecs:
            args.extend(["--", *pathspecs])
        outcome = await self._git(*args, name="git status")
        if outcome.exit_code != 0:
            raise RepositoryStateError(
                f"Unable to query working tree status: {outcome.stderr.strip()}",
                stderr=outcome.stderr,
            )
        return outcome.stdout.strip() == ""

    async def state(self, exclude_paths: Sequence[str] = ()) -> RepositoryState:
        """Resolve root, HEAD and cleanliness in one go"""
        root = await self.root()
        commit = await self.current_commit()
        clean = await self.is_clean(exclude_paths)
        return RepositoryState(root=root, commit=commit, dirty=not clean)

    async def is_tracked_at_commit(self, commit: str, relative_path: str) -> bool:
        """
        True iff ``relative_path`` exists in ``commit``

        Any nonzero exit, including "object not found", means not tracked.
        """
        outcome = await self._git(
            "cat-file", "-e", f"{commit}:{relative_path}", name=f"git cat-file {relative_path}"
        )
        if outcome.exit_code != 0:
            logger.debug(
                "path_not_tracked",
                commit=commit,
                path=relative_path,
                exit_code=outcome.exit_code,
                stderr=outcome.stderr.strip()[:200],
            )
            return False
        return True

    async def list_tags(self, pattern: str = "v*") -> List[str]:
        """Tags matching ``pattern``, newest version first as sorted by git"""
        outcome = await self._git("tag", "--list", pattern, "--sort=-v:refname", name="git tag --list")
        if outcome.exit_code != 0:
            raise RepositoryStateError(
                f"Unable to list tags: {outcome.stderr.strip()}",
                stderr=outcome.stderr,
            )
        return [line.strip() for line in outcome.stdout.splitlines() if line.strip()]

    async def fetch_all(self) -> None:
        """Fetch all remotes, tags included, pruning stale refs"""
        attempts = self.fetch_retries + 1
        outcome: Optional[CommandOutcome] = None
        for attempt in range(1, attempts + 1):
            outcome = await self._git("fetch", "--all", "--prune", "--tags", name="git fetch")
            if outcome.exit_code == 0:
                return
            logger.warning(
                "fetch_failed",
                attempt=attempt,
                attempts=attempts,
                stderr=outcome.stderr.strip()[:500],
            )
            if attempt < attempts and self.fetch_retry_delay > 0:
                await asyncio.sleep(self.fetch_retry_delay)

        raise NetworkError(
            f"git fetch failed after {attempts} attempt(s): {outcome.stderr.strip()}",
            stderr=outcome.stderr,
        )

    async def checkout_detached(self, ref: str) -> None:
        """Detach HEAD at ``ref``"""
        outcome = await self._git("checkout", "--detach", ref, name=f"git checkout {ref}")
        if outcome.exit_code != 0:
            raise CheckoutError(
                f"git checkout --detach {ref} failed: {outcome.stderr.strip()}",
                stderr=outcome.stderr,
            )

    async def restore_path(self, ref: str, relative_path: str) -> None:
        """Restore ``relative_path`` from ``ref`` into the working tree without moving HEAD"""
        outcome = await self._git(
            "checkout", ref, "--", relative_path, name=f"git restore {relative_path}"
        )
        if outcome.exit_code != 0:
            raise AssetRestoreError(
                f"Failed to restore {relative_path} from {ref}: {outcome.stderr.strip()}",
                stderr=outcome.stderr,
            )
