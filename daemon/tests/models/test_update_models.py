"""
Tests for the update value types.
"""
import pytest

from gateway_updater.models.update import (
    OUTPUT_TAIL_CHARS,
    TIMEOUT_EXIT_CODE,
    CommandInvocation,
    CommandOutcome,
    FailureKind,
    UpdateResult,
    UpdateStatus,
    UpdateStep,
)


class TestCommandInvocation:
    """Tests for CommandInvocation."""

    def test_requires_argv(self):
        with pytest.raises(ValueError):
            CommandInvocation(argv=())

    def test_display_and_timeout_copy(self):
        invocation = CommandInvocation(argv=("git", "status"), cwd="/srv/gateway", name="git status")
        budgeted = invocation.with_timeout(5.0)

        assert invocation.display == "git status"
        assert budgeted.timeout == 5.0
        assert budgeted.cwd == "/srv/gateway"
        assert budgeted.name == "git status"
        assert invocation.timeout is None


class TestCommandOutcome:
    """Tests for CommandOutcome."""

    def test_nonzero_exit_is_not_ok(self):
        assert CommandOutcome(exit_code=1).ok is False
        assert CommandOutcome().ok is True

    def test_timeout_outcome(self):
        outcome = CommandOutcome.timeout(2.0)

        assert outcome.timed_out is True
        assert outcome.exit_code == TIMEOUT_EXIT_CODE
        assert outcome.stderr.startswith("timeout")


class TestUpdateStep:
    """Tests for step recording."""

    def test_keeps_output_tail(self):
        invocation = CommandInvocation(argv=("pnpm", "build"), name="build")
        outcome = CommandOutcome(stdout="x" * (OUTPUT_TAIL_CHARS + 10) + "END", exit_code=0)

        step = UpdateStep.record(invocation, outcome, 1.23456)

        assert step.name == "build"
        assert len(step.stdout_tail) == OUTPUT_TAIL_CHARS
        assert step.stdout_tail.endswith("END")
        assert step.duration_seconds == 1.235


class TestUpdateResult:
    """Tests for UpdateResult."""

    def test_to_dict(self):
        result = UpdateResult(
            status=UpdateStatus.ERROR,
            message="pnpm build failed",
            from_commit="abc123",
            to_commit="abc123",
            failure=FailureKind.BUILD,
            rollback_attempted=True,
            rollback_succeeded=True,
        )

        data = result.to_dict()

        assert data["status"] == "error"
        assert data["failure"] == "build_error"
        assert data["from"] == "abc123"
        assert data["to"] == "abc123"
        assert data["needs_manual_intervention"] is False

    def test_failed_rollback_needs_manual_intervention(self):
        result = UpdateResult(
            status=UpdateStatus.ERROR,
            message="",
            rollback_attempted=True,
            rollback_succeeded=False,
        )

        assert result.needs_manual_intervention is True

    def test_no_op_status_value(self):
        assert UpdateStatus.NO_OP.value == "no-op"
