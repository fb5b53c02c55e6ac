"""Click command for waiting on a branch's build."""

import signal
import sys
from contextlib import contextmanager

import click
import requests

from circlewait.cancel_scope import CancelScope
from circlewait.cli_context import (
    branch_or_current,
    circle_client,
    git_repository,
    wait_timings,
    waiter_kwargs,
)
from circlewait.errors import CircleWaitError
from circlewait.wait.build_waiter import Failure, wait_for_build
from circlewait.wait.wait_opts import WaitOpts, WaitTimings


@contextmanager
def cancel_on_interrupt(scope: CancelScope):
    """Turn Ctrl+C into cancellation of scope, restoring the old handler on exit."""
    original = signal.getsignal(signal.SIGINT)

    def _handle_sigint(signum, frame):
        scope.cancel()

    signal.signal(signal.SIGINT, _handle_sigint)
    try:
        yield scope
    finally:
        signal.signal(signal.SIGINT, original)


@click.command("wait")
@click.argument("branch", required=False)
@click.option("--remote", default="origin", show_default=True, help="Git remote to use")
@click.option("--rebase", "rebase_against", default=None, metavar="BRANCH",
              help="Continually rebase against this remote Git branch")
@click.pass_context
def wait_cmd(ctx, branch, remote, rebase_against):
    """Wait for the latest build on BRANCH (default: current branch) to finish.

    Prints step timings while the build runs and the output of failed steps
    when it fails.
    """
    scope = CancelScope()
    try:
        git_repo = git_repository(ctx)
        opts = WaitOpts(
            branch=branch_or_current(git_repo, branch),
            remote=remote,
            rebase_against=rebase_against,
            timings=wait_timings(ctx) or WaitTimings(),
        )
        with cancel_on_interrupt(scope):
            outcome = wait_for_build(
                opts, circle_client(ctx), git_repo, scope, **waiter_kwargs(ctx),
            )
    except (CircleWaitError, requests.RequestException) as err:
        print(f"Error: {err}", file=sys.stderr)
        sys.exit(1)

    if isinstance(outcome, Failure):
        print(f"Build on {opts.branch} failed!", file=sys.stderr)
        sys.exit(1)
