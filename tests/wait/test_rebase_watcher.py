"""Tests for RebaseWatcher and RebaseState."""

import time

import pytest

from circlewait.cancel_scope import CancelScope
from circlewait.errors import GitOperationError
from circlewait.wait.rebase_watcher import RebaseState, RebaseWatcher

from fake_git_repository import FakeGitRepository


class FailingFetchGitRepository(FakeGitRepository):

    def fetch(self, remote, timeout=60, scope=None):
        self._record("fetch", remote)
        raise GitOperationError("git fetch origin failed", output="could not resolve host")


class MissingGitRepository(FakeGitRepository):

    def fetch(self, remote, timeout=60, scope=None):
        raise FileNotFoundError(2, "No such file or directory", "git")


def _watcher(git_repo, state=None, scope=None, interval=0.01):
    return RebaseWatcher(git_repo, "feature", "origin", "main", state or RebaseState(),
                         scope or CancelScope(), interval=interval, check_timeout=5)


@pytest.mark.unit
class TestRebaseState:

    def test_post_and_clear(self):
        state = RebaseState()
        assert state.pending() == ""
        state.post("def456")
        assert state.pending() == "def456"
        state.clear()
        assert state.pending() == ""


@pytest.mark.unit
class TestCheckOnce:

    def test_posts_upstream_commit_that_is_not_merge_base(self):
        git_repo = FakeGitRepository()
        git_repo.set_upstream("def456", merge_base="aaa111")
        state = RebaseState()

        _watcher(git_repo, state).check_once()

        assert state.pending() == "def456"
        assert git_repo.calls[:3] == [
            ("fetch", "origin"),
            ("show_ref", "origin/main"),
            ("merge_base", "origin/main", "feature"),
        ]

    def test_up_to_date_branch_posts_nothing(self):
        git_repo = FakeGitRepository()
        git_repo.set_upstream("aaa111", merge_base="aaa111")
        state = RebaseState()

        _watcher(git_repo, state).check_once()

        assert state.pending() == ""

    def test_missing_git_executable_is_kept_not_raised(self):
        watcher = _watcher(MissingGitRepository())

        watcher.check_once()

        assert isinstance(watcher.last_error, FileNotFoundError)

    def test_git_errors_are_kept_not_raised(self):
        state = RebaseState()
        watcher = _watcher(FailingFetchGitRepository(), state)

        watcher.check_once()

        assert isinstance(watcher.last_error, GitOperationError)
        assert state.pending() == ""


@pytest.mark.unit
class TestBackgroundThread:

    def test_first_check_is_awaitable(self):
        git_repo = FakeGitRepository()
        git_repo.set_upstream("def456", merge_base="aaa111")
        state = RebaseState()
        scope = CancelScope()
        watcher = _watcher(git_repo, state, scope).start()

        assert watcher.wait_first_check(scope)
        assert state.pending() == "def456"

        scope.cancel()
        watcher.join(timeout=2)
        assert watcher.checks >= 1

    def test_first_check_is_released_even_when_it_fails(self):
        scope = CancelScope()
        watcher = _watcher(FailingFetchGitRepository(), scope=scope).start()

        assert watcher.wait_first_check(scope)

        scope.cancel()
        watcher.join(timeout=2)

    def test_thread_keeps_checking_after_os_errors(self):
        scope = CancelScope()
        watcher = _watcher(MissingGitRepository(), scope=scope).start()
        watcher.wait_first_check(scope)

        deadline = time.monotonic() + 2
        while watcher.checks < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        scope.cancel()
        watcher.join(timeout=2)

        assert watcher.checks >= 3

    def test_cancel_stops_the_thread(self):
        git_repo = FakeGitRepository()
        scope = CancelScope()
        watcher = _watcher(git_repo, scope=scope, interval=30).start()
        watcher.wait_first_check(scope)

        scope.cancel()
        watcher.join(timeout=2)

        assert not watcher._thread.is_alive()
