"""Tests for the wait command, run through CliRunner with fakes in obj."""

import io
import signal

import pytest
from click.testing import CliRunner

from circlewait.cancel_scope import CancelScope
from circlewait.cli import main
from circlewait.errors import CircleApiError
from circlewait.wait.cli import cancel_on_interrupt
from circlewait.wait.terminal_display import TerminalDisplay

from build_factory import detail, failed_step, fast_timings, summary
from fake_circle_client import FakeCircleClient
from fake_git_repository import FakeGitRepository
from fake_notifier import FakeNotifierFactory


def _obj(client, git_repo=None):
    return {
        "token": "secret",
        "circle_client": client,
        "git_repo": git_repo or FakeGitRepository(),
        "wait_timings": fast_timings(),
        "waiter_kwargs": {
            "display": TerminalDisplay(stream=io.StringIO(), interactive=False),
            "notifier_factory": FakeNotifierFactory(),
            "open_browser": lambda url: True,
        },
    }


@pytest.mark.unit
class TestWaitCommand:

    def test_success_exits_zero(self):
        client = FakeCircleClient()
        client.queue_builds([summary(1, "success")])
        client.set_detail(1, detail(1, "success"))

        result = CliRunner().invoke(main, ["wait"], obj=_obj(client))

        assert result.exit_code == 0, result.output
        assert "Build on feature succeeded!" in result.output

    def test_failure_exits_one(self):
        client = FakeCircleClient()
        client.queue_builds([summary(1, "failed")])
        client.set_detail(1, detail(1, "failed", steps=[failed_step()]))

        result = CliRunner().invoke(main, ["wait"], obj=_obj(client))

        assert result.exit_code == 1
        assert "Build on feature failed!" in result.output

    def test_explicit_branch(self):
        client = FakeCircleClient()
        client.queue_builds([summary(1, "success")])
        client.set_detail(1, detail(1, "success"))

        result = CliRunner().invoke(main, ["wait", "release"], obj=_obj(client))

        assert result.exit_code == 0, result.output
        assert client.calls[0][2] == "release"

    def test_api_error_is_reported(self):
        client = FakeCircleClient()
        client.queue_builds(CircleApiError(404, "Project not found"))

        result = CliRunner().invoke(main, ["wait"], obj=_obj(client))

        assert result.exit_code == 1
        assert "Error: Request failed with status [404]: Project not found" in result.output

    def test_no_builds_is_reported(self):
        result = CliRunner().invoke(main, ["wait"], obj=_obj(FakeCircleClient()))

        assert result.exit_code == 1
        assert "No results, are you sure there are tests for acme/widgets?" in result.output

    def test_rebase_option_sets_upstream(self):
        client = FakeCircleClient()
        client.queue_builds([summary(1, "success")])
        client.set_detail(1, detail(1, "success"))
        git_repo = FakeGitRepository()
        git_repo.set_upstream("aaa111", merge_base="aaa111")

        result = CliRunner().invoke(main, ["wait", "--rebase", "main"], obj=_obj(client, git_repo))

        assert result.exit_code == 0, result.output
        assert ("show_ref", "origin/main") in git_repo.calls


@pytest.mark.unit
class TestCancelOnInterrupt:

    def test_sigint_cancels_scope_and_handler_is_restored(self):
        original = signal.getsignal(signal.SIGINT)
        scope = CancelScope()
        with cancel_on_interrupt(scope):
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
            assert scope.cancelled
        assert signal.getsignal(signal.SIGINT) is original


@pytest.mark.unit
class TestVersionCommand:

    def test_prints_version(self):
        result = CliRunner().invoke(main, ["version"])
        assert result.exit_code == 0
        assert result.output == "circlewait version 0.32\n"
