"""Click commands for inspecting and controlling a branch's CircleCI builds."""

import sys
import webbrowser

import click
import requests

from circlewait.cancel_scope import CancelScope
from circlewait.circle.builds import BuildStatus, failed_container_url
from circlewait.cli_context import branch_or_current, circle_client, git_repository
from circlewait.errors import CircleApiError, CircleWaitError, NoBuildsError

RECENT_BUILD_COUNT = 5


def colored_status(status: str) -> str:
    build_status = BuildStatus.parse(status)
    if build_status.passed:
        color = 119
    elif build_status.not_running:
        color = 20
    elif build_status.failed:
        color = 160
    elif build_status.running:
        color = 80
    else:
        color = 0
    return f"\033[38;05;{color}m{status:<8}\033[0m"


def _latest_build(ctx, branch, scope):
    git_repo = git_repository(ctx)
    branch = branch_or_current(git_repo, branch)
    remote = git_repo.remote_url("origin")
    builds = circle_client(ctx).list_recent_builds(remote, branch, scope)
    if not builds:
        raise NoBuildsError(
            f"No results, are you sure there are tests for {remote.org}/{remote.project}?"
        )
    return remote, builds[0]


def _fail(err):
    print(f"Error: {err}", file=sys.stderr)
    sys.exit(1)


@click.command("builds")
@click.argument("branch", required=False)
@click.pass_context
def builds_cmd(ctx, branch):
    """Show the most recent builds for BRANCH (default: current branch)."""
    try:
        git_repo = git_repository(ctx)
        branch = branch_or_current(git_repo, branch)
        git_repo.tip(branch)
        remote = git_repo.remote_url("origin")
        print(f"\nFetching recent builds for {branch} starting with most recent commit\n")
        with CancelScope().child(timeout=20) as scope:
            builds = circle_client(ctx).list_recent_builds(remote, branch, scope)
    except (CircleWaitError, requests.RequestException) as err:
        _fail(err)

    for build in builds[:RECENT_BUILD_COUNT]:
        print(build.build_url, colored_status(build.status), build.compare_url)
    print("\nMost recent build statuses fetched!")


@click.command("open")
@click.argument("branch", required=False)
@click.pass_context
def open_cmd(ctx, branch):
    """Open the latest build for BRANCH in a browser.

    Opens the first failed container when there is one.
    """
    open_browser = ctx.find_root().ensure_object(dict).get("open_browser", webbrowser.open)
    try:
        with CancelScope().child(timeout=20) as scope:
            remote, latest = _latest_build(ctx, branch, scope)
            url = latest.build_url
            if not latest.not_running:
                try:
                    detail = circle_client(ctx).get_build_detail(remote, latest.build_num, scope)
                except (CircleApiError, requests.RequestException) as err:
                    print(f"error getting build detail: {err}", file=sys.stderr)
                    detail = None
                action = detail.first_failed_action() if detail is not None else None
                if action is not None:
                    url = failed_container_url(latest.build_url, action)
    except NoBuildsError as err:
        print(err)
        return
    except (CircleWaitError, requests.RequestException) as err:
        _fail(err)

    if not open_browser(url):
        _fail(f"could not open {url}")


@click.command("cancel")
@click.argument("branch", required=False)
@click.pass_context
def cancel_cmd(ctx, branch):
    """Cancel the latest build on BRANCH (default: current branch)."""
    try:
        with CancelScope().child(timeout=10) as scope:
            remote, latest = _latest_build(ctx, branch, scope)
            circle_client(ctx).cancel_build(remote, latest.build_num, scope)
    except (CircleWaitError, requests.RequestException) as err:
        _fail(err)
    print(f"Cancelled build {latest.build_num}")


@click.command("rebuild")
@click.argument("branch", required=False)
@click.pass_context
def rebuild_cmd(ctx, branch):
    """Rebuild the latest build on BRANCH (default: current branch)."""
    try:
        with CancelScope().child(timeout=10) as scope:
            _, latest = _latest_build(ctx, branch, scope)
            circle_client(ctx).rebuild(latest, scope)
    except (CircleWaitError, requests.RequestException) as err:
        _fail(err)
    print(f"Triggered a rebuild of build {latest.build_num}")


@click.command("enable")
@click.pass_context
def enable_cmd(ctx):
    """Turn on CircleCI builds for this project."""
    try:
        remote = git_repository(ctx).remote_url("origin")
        with CancelScope().child(timeout=10) as scope:
            circle_client(ctx).enable(remote, scope)
    except (CircleWaitError, requests.RequestException) as err:
        _fail(err)
    print(f"Enabled CircleCI builds for {remote.org}/{remote.project}")
