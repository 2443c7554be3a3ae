"""
Unit tests for RepositoryInspector.

Every git call is answered by a ScriptedRunner keyed by the exact argv.
"""
import pytest

from gateway_updater.services.errors import (
    AssetRestoreError,
    CheckoutError,
    NetworkError,
    NotAGitRepositoryError,
    RepositoryStateError,
    VersionResolutionError,
)
from gateway_updater.services.repository import RepositoryInspector, exclude_pathspecs
from scripted_runner import ScriptedRunner, fail, ok

REPO = "/srv/gateway"


def git(*args: str, directory: str = REPO) -> str:
    return " ".join(["git", "-C", directory, *args])


def make_inspector(script, **kwargs) -> RepositoryInspector:
    runner = ScriptedRunner(script)
    return RepositoryInspector(runner, REPO, **kwargs)


class TestExcludePathspecs:
    """Tests for the pathspec helper."""

    def test_prefixes_each_path(self):
        assert exclude_pathspecs(["dist/control-ui/", "dist/docs/"]) == [
            ":!dist/control-ui/",
            ":!dist/docs/",
        ]

    def test_skips_empty_paths(self):
        assert exclude_pathspecs(["", "dist/control-ui/"]) == [":!dist/control-ui/"]


class TestRoot:
    """Tests for repository root discovery."""

    @pytest.mark.asyncio
    async def test_resolves_toplevel(self):
        inspector = make_inspector({git("rev-parse", "--show-toplevel"): ok(f"{REPO}\n")})

        assert await inspector.root() == REPO
        assert inspector.git_dir == REPO

    @pytest.mark.asyncio
    async def test_later_commands_target_the_root(self):
        """A cwd nested inside the repository still issues git against the top-level."""
        nested = f"{REPO}/packages/ui"
        runner = ScriptedRunner({
            git("rev-parse", "--show-toplevel", directory=nested): ok(f"{REPO}\n"),
            git("rev-parse", "HEAD"): ok("abc123\n"),
        })
        inspector = RepositoryInspector(runner, nested)

        await inspector.root()
        assert await inspector.current_commit() == "abc123"

    @pytest.mark.asyncio
    async def test_outside_repository_raises(self):
        inspector = make_inspector({
            git("rev-parse", "--show-toplevel"): fail("fatal: not a git repository", code=128),
        })

        with pytest.raises(NotAGitRepositoryError) as exc_info:
            await inspector.root()

        assert "not a git repository" in exc_info.value.stderr


class TestCommits:
    """Tests for commit resolution."""

    @pytest.mark.asyncio
    async def test_current_commit(self):
        inspector = make_inspector({git("rev-parse", "HEAD"): ok("abc123\n")})

        assert await inspector.current_commit() == "abc123"

    @pytest.mark.asyncio
    async def test_current_commit_failure_is_repository_state_error(self):
        inspector = make_inspector({git("rev-parse", "HEAD"): fail("fatal: bad HEAD")})

        with pytest.raises(RepositoryStateError):
            await inspector.current_commit()

    @pytest.mark.asyncio
    async def test_empty_head_output_raises(self):
        inspector = make_inspector({git("rev-parse", "HEAD"): ok("")})

        with pytest.raises(RepositoryStateError):
            await inspector.current_commit()

    @pytest.mark.asyncio
    async def test_resolve_tag_peels_to_commit(self):
        inspector = make_inspector({git("rev-parse", "v1.0.1^{commit}"): ok("def456\n")})

        assert await inspector.resolve_commit("v1.0.1") == "def456"

    @pytest.mark.asyncio
    async def test_unknown_tag_raises(self):
        inspector = make_inspector({})

        with pytest.raises(VersionResolutionError):
            await inspector.resolve_commit("v9.9.9")


class TestWorkingTree:
    """Tests for cleanliness checks."""

    @pytest.mark.asyncio
    async def test_clean_tree(self):
        inspector = make_inspector({git("status", "--porcelain"): ok("")})

        assert await inspector.is_clean() is True

    @pytest.mark.asyncio
    async def test_dirty_tree(self):
        inspector = make_inspector({git("status", "--porcelain"): ok(" M src/index.ts\n")})

        assert await inspector.is_clean() is False

    @pytest.mark.asyncio
    async def test_excludes_protected_paths(self):
        runner = ScriptedRunner({git("status", "--porcelain", "--", ":!dist/control-ui/"): ok("")})
        inspector = RepositoryInspector(runner, REPO)

        assert await inspector.is_clean(["dist/control-ui/"]) is True
        assert runner.calls == [git("status", "--porcelain", "--", ":!dist/control-ui/")]

    @pytest.mark.asyncio
    async def test_status_failure_raises(self):
        inspector = make_inspector({git("status", "--porcelain"): fail("fatal: index locked")})

        with pytest.raises(RepositoryStateError):
            await inspector.is_clean()

    @pytest.mark.asyncio
    async def test_state_snapshot(self):
        inspector = make_inspector({
            git("rev-parse", "--show-toplevel"): ok(f"{REPO}\n"),
            git("rev-parse", "HEAD"): ok("abc123\n"),
            git("status", "--porcelain"): ok("?? notes.txt\n"),
        })

        state = await inspector.state()

        assert state.root == REPO
        assert state.commit == "abc123"
        assert state.dirty is True


class TestTags:
    """Tests for tag listing and path probes."""

    @pytest.mark.asyncio
    async def test_list_tags_in_git_order(self):
        inspector = make_inspector({
            git("tag", "--list", "v*", "--sort=-v:refname"): ok("v1.0.1\nv1.0.0\n\n"),
        })

        assert await inspector.list_tags() == ["v1.0.1", "v1.0.0"]

    @pytest.mark.asyncio
    async def test_list_tags_failure_raises(self):
        inspector = make_inspector({})

        with pytest.raises(RepositoryStateError):
            await inspector.list_tags()

    @pytest.mark.asyncio
    async def test_tracked_path(self):
        inspector = make_inspector({git("cat-file", "-e", "def456:dist/control-ui/index.html"): ok()})

        assert await inspector.is_tracked_at_commit("def456", "dist/control-ui/index.html") is True

    @pytest.mark.asyncio
    async def test_any_probe_failure_means_untracked(self):
        inspector = make_inspector({
            git("cat-file", "-e", "def456:dist/control-ui/index.html"): fail(
                "fatal: path 'dist/control-ui/index.html' does not exist in 'def456'", code=128
            ),
        })

        assert await inspector.is_tracked_at_commit("def456", "dist/control-ui/index.html") is False


class TestFetch:
    """Tests for fetching with retries."""

    @pytest.mark.asyncio
    async def test_fetch_succeeds(self):
        runner = ScriptedRunner({git("fetch", "--all", "--prune", "--tags"): ok()})
        inspector = RepositoryInspector(runner, REPO)

        await inspector.fetch_all()

        assert runner.calls == [git("fetch", "--all", "--prune", "--tags")]

    @pytest.mark.asyncio
    async def test_fetch_retries_transient_failure(self):
        key = git("fetch", "--all", "--prune", "--tags")
        runner = ScriptedRunner({key: [fail("Could not resolve host"), ok()]})
        inspector = RepositoryInspector(runner, REPO, fetch_retries=1)

        await inspector.fetch_all()

        assert runner.calls.count(key) == 2

    @pytest.mark.asyncio
    async def test_fetch_gives_up_after_retries(self):
        key = git("fetch", "--all", "--prune", "--tags")
        runner = ScriptedRunner({key: fail("Could not resolve host")})
        inspector = RepositoryInspector(runner, REPO, fetch_retries=2)

        with pytest.raises(NetworkError) as exc_info:
            await inspector.fetch_all()

        assert runner.calls.count(key) == 3
        assert "Could not resolve host" in exc_info.value.message


class TestMutations:
    """Tests for checkout and path restore."""

    @pytest.mark.asyncio
    async def test_checkout_detached(self):
        runner = ScriptedRunner({git("checkout", "--detach", "v1.0.1"): ok()})
        inspector = RepositoryInspector(runner, REPO)

        await inspector.checkout_detached("v1.0.1")

        assert runner.calls == [git("checkout", "--detach", "v1.0.1")]

    @pytest.mark.asyncio
    async def test_checkout_failure_raises(self):
        inspector = make_inspector({
            git("checkout", "--detach", "v1.0.1"): fail("error: Your local changes would be overwritten"),
        })

        with pytest.raises(CheckoutError):
            await inspector.checkout_detached("v1.0.1")

    @pytest.mark.asyncio
    async def test_restore_path(self):
        runner = ScriptedRunner({git("checkout", "def456", "--", "dist/control-ui/"): ok()})
        inspector = RepositoryInspector(runner, REPO)

        await inspector.restore_path("def456", "dist/control-ui/")

        assert runner.calls == [git("checkout", "def456", "--", "dist/control-ui/")]

    @pytest.mark.asyncio
    async def test_restore_failure_raises(self):
        inspector = make_inspector({})

        with pytest.raises(AssetRestoreError):
            await inspector.restore_path("def456", "dist/control-ui/")
