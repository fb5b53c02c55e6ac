"""Background detection of upstream commits the branch should be rebased onto."""

import threading
from typing import Optional

from circlewait.cancel_scope import CancelScope
from circlewait.errors import CircleWaitError


class RebaseState:
    """Holds at most one pending upstream commit hash.

    Written by RebaseWatcher, read and cleared by the wait loop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._commit = ""

    def post(self, commit: str):
        with self._lock:
            self._commit = commit

    def pending(self) -> str:
        with self._lock:
            return self._commit

    def clear(self):
        with self._lock:
            self._commit = ""


class RebaseWatcher:
    """Periodically checks whether remote/target has moved past branch's merge base.

    Args:
        git_repo: GitRepository (or FakeGitRepository).
        branch: Local branch being waited on.
        remote: Remote name, e.g. "origin".
        rebase_against: Upstream branch on that remote.
        state: RebaseState the result is posted to.
        scope: CancelScope; the watcher stops when it is cancelled.
        interval: Seconds between checks.
        check_timeout: Deadline for one check.
    """

    def __init__(self, git_repo, branch, remote, rebase_against, state: RebaseState,
                 scope: CancelScope, interval=10, check_timeout=60):
        self._git_repo = git_repo
        self._branch = branch
        self._remote = remote
        self._ref = f"{remote}/{rebase_against}"
        self._state = state
        self._scope = scope
        self._interval = interval
        self._check_timeout = check_timeout
        self._first_check_done = threading.Event()
        self._thread = None
        self.last_error: Optional[Exception] = None
        self.checks = 0

    def new_remote_commit(self, scope: CancelScope) -> str:
        """Return the upstream commit if it is not the merge base, else ""."""
        self._git_repo.fetch(self._remote, timeout=self._check_timeout, scope=scope)
        commit = self._git_repo.show_ref(self._ref, timeout=self._check_timeout, scope=scope)
        merge_base = self._git_repo.merge_base(
            self._ref, self._branch, timeout=self._check_timeout, scope=scope,
        )
        if commit != merge_base:
            return commit
        return ""

    def check_once(self):
        with self._scope.child(timeout=self._check_timeout) as scope:
            try:
                commit = self.new_remote_commit(scope)
            except (CircleWaitError, OSError) as err:
                self.last_error = err
                return
        self.last_error = None
        if commit:
            self._state.post(commit)

    def _run(self):
        try:
            while not self._scope.cancelled:
                self.check_once()
                self.checks += 1
                self._first_check_done.set()
                if self._scope.wait(self._interval):
                    return
        finally:
            self._first_check_done.set()

    def start(self):
        self._thread = threading.Thread(target=self._run, name="rebase-watcher", daemon=True)
        self._thread.start()
        return self

    def wait_first_check(self, scope: CancelScope) -> bool:
        """Block until the first check has finished. False if scope was cancelled."""
        return scope.wait_for(self._first_check_done)

    def join(self, timeout=None):
        if self._thread is not None:
            self._thread.join(timeout)
