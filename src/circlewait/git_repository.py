"""GitRepository: wraps GitPython Repo plus the git commands the wait loop runs.

Read-only lookups (branch, tip, remote URL) use GitPython. Commands that touch
the network or rewrite the branch (fetch, rebase, push) shell out to git under
a timeout and an optional CancelScope, so they can be killed on Ctrl+C and
their full output can be shown when they fail.
"""

import os
import re
import signal
import subprocess
import sys
import time
from dataclasses import dataclass

from git import Repo
from git.exc import BadName, InvalidGitRepositoryError, NoSuchPathError

from circlewait.errors import (
    GitOperationError,
    OperationCancelled,
    PushFailedError,
    RebaseFailedError,
)

_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class RemoteURL:
    host: str
    org: str
    project: str


_SCP_LIKE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>[^/].*)$")
_URL_LIKE = re.compile(r"^[a-z+]+://(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?/(?P<path>.+)$")


def parse_remote_url(url: str) -> RemoteURL:
    """Split a git remote URL into host, org and project.

    Accepts https://host/org/project(.git), ssh://git@host/org/project.git and
    git@host:org/project.git.
    """
    url = url.strip()
    match = _URL_LIKE.match(url) or _SCP_LIKE.match(url)
    if not match:
        raise GitOperationError(f"could not parse remote URL {url!r}")
    path = match.group("path").rstrip("/")
    if path.endswith(".git"):
        path = path[:-len(".git")]
    parts = path.split("/")
    if len(parts) < 2 or not all(parts[-2:]):
        raise GitOperationError(f"could not parse remote URL {url!r}")
    return RemoteURL(host=match.group("host"), org=parts[-2], project=parts[-1])


def _debug_cmd() -> bool:
    return os.environ.get("DEBUG_CMD") == "true"


class GitRepository:
    """Branch, tip and remote operations on one local repository.

    Args:
        repo: A GitPython Repo instance.
    """

    def __init__(self, repo):
        self._repo = repo

    @classmethod
    def discover(cls, path="."):
        try:
            return cls(Repo(path, search_parent_directories=True))
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise GitOperationError(f"{os.path.abspath(path)} is not inside a git repository")

    @property
    def working_tree_dir(self):
        return self._repo.working_tree_dir

    def current_branch(self) -> str:
        try:
            return self._repo.active_branch.name
        except TypeError:
            raise GitOperationError("HEAD is detached; pass a branch name explicitly")

    def tip(self, branch: str) -> str:
        """Commit hash at the head of branch."""
        try:
            return self._repo.commit(branch).hexsha
        except (BadName, ValueError):
            raise GitOperationError(f"branch {branch} not found")

    def remote_url(self, remote_name: str) -> RemoteURL:
        try:
            remote = self._repo.remote(remote_name)
        except ValueError:
            raise GitOperationError(f"no git remote named {remote_name}")
        return parse_remote_url(remote.url)

    def _run_git(self, args, timeout, scope=None):
        """Run git, killing it when scope is cancelled or timeout runs out."""
        if scope is not None:
            timeout = scope.timeout_for(timeout)
        cmd = ["git"] + list(args)
        if _debug_cmd():
            print(" ".join(cmd), file=sys.stderr)
        process = subprocess.Popen(
            cmd,
            cwd=self.working_tree_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
        deadline = time.monotonic() + timeout
        while True:
            try:
                stdout, stderr = process.communicate(timeout=_POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                pass
            else:
                return subprocess.CompletedProcess(cmd, process.returncode, stdout, stderr)
            if scope is not None and scope.cancelled:
                self._kill(process)
                raise OperationCancelled(f"{' '.join(cmd)} cancelled")
            if time.monotonic() >= deadline:
                self._kill(process)
                raise GitOperationError(f"{' '.join(cmd)} timed out after {timeout:.0f}s")

    @staticmethod
    def _kill(process):
        """Kill git and the helpers it started (ssh, remote-https), which share its pipes."""
        os.killpg(process.pid, signal.SIGKILL)
        process.communicate()

    def _check_git(self, args, timeout, scope=None) -> str:
        result = self._run_git(args, timeout, scope)
        if result.returncode != 0:
            raise GitOperationError(
                f"git {' '.join(args)} failed",
                output=result.stdout + result.stderr,
            )
        return result.stdout

    def fetch(self, remote: str, timeout: float = 60, scope=None):
        self._check_git(["fetch", remote], timeout, scope)

    def show_ref(self, ref: str, timeout: float = 60, scope=None) -> str:
        output = self._check_git(["show-ref", "--hash", ref], timeout, scope)
        lines = output.split()
        if not lines:
            raise GitOperationError(f"ref {ref} not found")
        return lines[0]

    def merge_base(self, ref: str, branch: str, timeout: float = 60, scope=None) -> str:
        return self._check_git(["merge-base", ref, branch], timeout, scope).strip()

    def rebase(self, onto: str, branch: str, timeout: float = 30, scope=None):
        """Rebase branch onto the given ref.

        On failure the rebase is aborted so the repository is left clean, and
        RebaseFailedError carries the output of both commands. A cancelled
        rebase is aborted too before OperationCancelled propagates.
        """
        try:
            result = self._run_git(["rebase", onto, branch], timeout, scope)
        except OperationCancelled:
            self._run_git(["rebase", "--abort"], timeout)
            raise
        except GitOperationError as err:
            output = str(err)
        else:
            if result.returncode == 0:
                return
            output = result.stdout + result.stderr
        abort = self._run_git(["rebase", "--abort"], timeout)
        raise RebaseFailedError(
            f"git rebase {onto} {branch} failed",
            output=output,
            abort_output=abort.stdout + abort.stderr,
            aborted=abort.returncode == 0,
        )

    def force_push(self, branch: str, remote: str, timeout: float = 60, scope=None):
        """Push branch to remote with --force-with-lease."""
        result = self._run_git(
            ["push", "--force-with-lease", remote, f"{branch}:{branch}"], timeout, scope,
        )
        if result.returncode != 0:
            raise PushFailedError(
                f"git push {remote} {branch} failed",
                output=result.stdout + result.stderr,
            )
