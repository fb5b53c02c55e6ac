"""Collaborators shared by the CLI commands, looked up on the click context.

Tests pass prepared fakes through ``obj``; otherwise the real client and
repository are built on first use.
"""

from circlewait.circle.circle_client import CircleClient
from circlewait.git_repository import GitRepository


def _obj(ctx):
    return ctx.find_root().ensure_object(dict)


def circle_client(ctx):
    obj = _obj(ctx)
    if "circle_client" not in obj:
        obj["circle_client"] = CircleClient(obj.get("token"))
    return obj["circle_client"]


def git_repository(ctx):
    obj = _obj(ctx)
    if "git_repo" not in obj:
        obj["git_repo"] = GitRepository.discover()
    return obj["git_repo"]


def branch_or_current(git_repo, branch):
    """The given branch, or the checked-out branch when none was given."""
    if branch:
        return branch
    return git_repo.current_branch()


def wait_timings(ctx):
    """WaitTimings override placed in obj, or None for the defaults."""
    return _obj(ctx).get("wait_timings")


def waiter_kwargs(ctx):
    """Extra BuildWaiter collaborators (display, open_browser, ...) from obj."""
    return _obj(ctx).get("waiter_kwargs", {})
