"""BuildWaiter: polls CircleCI until the branch's build finishes.

One BuildWaiter instance runs one pass of the wait loop. A pass ends with a
WaitOutcome, or raises a CircleWaitError for fatal API and git failures.
When a pass rebases the branch it ends with ChangedRemote, and
wait_for_build() starts a fresh pass against the new tip.
"""

import time
import webbrowser
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional

import requests

from circlewait.cancel_scope import CancelScope
from circlewait.circle.build_statistics import format_elapsed, running_line
from circlewait.circle.builds import BuildSummary, failed_container_url
from circlewait.circle.cost import effective_cost_cents, format_cents
from circlewait.errors import (
    CircleApiError,
    CircleWaitError,
    NoBuildsError,
    OperationCancelled,
    PushFailedError,
    RebaseFailedError,
    RemoteChanged,
    is_retryable,
)
from circlewait.notifier import Notifier
from circlewait.wait.rebase_watcher import RebaseState, RebaseWatcher
from circlewait.wait.terminal_display import TerminalDisplay
from circlewait.wait.wait_opts import WaitOpts


@dataclass(frozen=True)
class Success:
    duration: timedelta


@dataclass(frozen=True)
class Failure:
    duration: timedelta
    failure_texts: List[str] = field(default_factory=list)
    build_url: str = ""


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class ChangedRemote:
    pass


def shorter_length(a: str, b: str) -> int:
    """Length of the shorter of two commit hashes."""
    return min(len(a), len(b))


def _round_to_second(duration: timedelta) -> timedelta:
    return timedelta(seconds=int(duration.total_seconds() + 0.5))


class BuildWaiter:
    """Reconciles the latest CircleCI build for a branch against the local tip.

    Args:
        opts: WaitOpts for this wait.
        circle_client: CircleClient (or FakeCircleClient).
        git_repo: GitRepository (or FakeGitRepository).
        display: TerminalDisplay the statistics table is drawn on.
        scope: CancelScope; cancelling it ends the pass with Cancelled.
        notifier_factory: Builds a Notifier from (name, open_url).
        open_browser: Opens a URL, returning True on success.
        cost_fn: Maps elapsed time to a cost in cents.
        clock: Monotonic clock, for the throttled status line.
    """

    def __init__(self, opts: WaitOpts, circle_client, git_repo, display: TerminalDisplay,
                 scope: CancelScope, notifier_factory=Notifier,
                 open_browser: Callable[[str], bool] = webbrowser.open,
                 cost_fn: Callable[[timedelta], int] = effective_cost_cents,
                 clock: Callable[[], float] = time.monotonic):
        self._opts = opts
        self._timings = opts.timings
        self._client = circle_client
        self._git_repo = git_repo
        self._display = display
        self._parent_scope = scope
        self._notifier_factory = notifier_factory
        self._open_browser = open_browser
        self._cost_fn = cost_fn
        self._clock = clock
        self._scope: Optional[CancelScope] = None
        self._rebase_state: Optional[RebaseState] = None
        self._watcher: Optional[RebaseWatcher] = None
        self._notifier = None
        self._remote = None
        self._lines_drawn = 0
        self._last_printed_at: Optional[float] = None
        self._has_opened_failed_build = False

    @property
    def branch(self) -> str:
        return self._opts.branch

    def run(self):
        """Run one pass. Returns Success, Failure, Cancelled or ChangedRemote.

        The rebase watcher has stopped by the time this returns, so the next
        pass never overlaps its git commands.
        """
        try:
            with self._parent_scope.child() as scope:
                self._scope = scope
                try:
                    return self._run()
                except OperationCancelled:
                    return Cancelled()
                except RemoteChanged:
                    return ChangedRemote()
        finally:
            if self._watcher is not None:
                self._watcher.join(self._timings.rebase_check_timeout)

    def _sleep(self, seconds):
        if self._scope.wait(seconds):
            raise OperationCancelled("wait cancelled")

    def _mark_printed(self):
        self._last_printed_at = self._clock()

    def _start_watcher(self):
        if not self._opts.rebase_against:
            return
        self._rebase_state = RebaseState()
        self._watcher = RebaseWatcher(
            self._git_repo, self.branch, self._opts.remote, self._opts.rebase_against,
            self._rebase_state, self._scope,
            interval=self._timings.rebase_check_interval,
            check_timeout=self._timings.rebase_check_timeout,
        ).start()

    def _wait_for_first_rebase_check(self):
        if self._watcher is None:
            return
        if not self._watcher.wait_first_check(self._scope):
            raise OperationCancelled("wait cancelled")

    def _run(self):
        self._remote = self._git_repo.remote_url(self._opts.remote)
        tip = self._git_repo.tip(self.branch)
        self._start_watcher()

        print(f"Waiting for latest build on {self.branch} to complete")
        self._sleep(self._timings.startup_delay)

        while True:
            latest = self._fetch_latest_build()
            if latest is None:
                continue
            self._notifier = self._notifier_factory(
                f"{self._remote.project} (circlewait)", latest.build_url,
            )

            compare_length = shorter_length(latest.vcs_revision, tip)
            short_tip = tip[:compare_length] if compare_length else tip
            short_revision = latest.vcs_revision[:compare_length]
            if not short_revision or short_revision != short_tip:
                self._handle_tip_mismatch(short_revision, short_tip)
                continue

            duration = _round_to_second(latest.elapsed())
            if latest.passed:
                return self._handle_passed(latest, duration)
            if latest.failed:
                return self._handle_failed(latest, duration)
            if latest.running:
                self._handle_running(latest, duration)
            elif latest.not_running:
                self._handle_not_running(latest, duration)
            else:
                print(f"Status is {latest.status}, trying again")
                self._mark_printed()

            self._apply_pending_rebase()
            self._sleep_between_polls(latest)

    def _fetch_latest_build(self) -> Optional[BuildSummary]:
        """Most recent build, or None after a transient error has been waited out."""
        try:
            builds = self._call(self._client.list_recent_builds, self._remote, self.branch)
        except (requests.RequestException, OSError) as err:
            if not is_retryable(err):
                raise
            print(f"Caught network error: {err}. Continuing")
            self._mark_printed()
            self._sleep(self._timings.network_retry_delay)
            return None
        if not builds:
            raise NoBuildsError(
                f"No results, are you sure there are tests for "
                f"{self._remote.org}/{self._remote.project}?"
            )
        return builds[0]

    def _call(self, fn, *args):
        """Call a client method under a child scope bounded by request_timeout."""
        with self._scope.child(timeout=self._timings.request_timeout) as scope:
            return fn(*args, scope)

    def _handle_tip_mismatch(self, short_revision, tip):
        if self._opts.rebase_against:
            try:
                self._git_repo.force_push(
                    self.branch, self._opts.remote,
                    timeout=self._timings.push_timeout, scope=self._scope,
                )
            except PushFailedError as err:
                print(f"""CircleCI built commit {short_revision} does not match local commit {tip}.

We attempted a force push to {self._opts.remote}/{self.branch} to trigger a build, but it failed.
Push output was:

{err.output}""")
                self._notifier.display("force push failed")
                raise
            print(f"Force pushed local commit {tip} to {self._opts.remote}/{self.branch} "
                  f"to trigger new build...")
            self._sleep(self._timings.force_push_delay)
        else:
            print(f"Latest build in Circle is {short_revision}, waiting for {tip}...")
            self._mark_printed()
            self._sleep(self._timings.tip_mismatch_delay)

    def _get_detail(self, latest):
        return self._call(self._client.get_build_detail, self._remote, latest.build_num)

    def _show_final_statistics(self, detail):
        if self._display.interactive:
            self._display.draw_final(detail, self._lines_drawn)
        else:
            self._display.print_statistics(detail)

    def _handle_passed(self, latest, duration):
        self._wait_for_first_rebase_check()
        self._apply_pending_rebase()
        try:
            detail = self._get_detail(latest)
        except (requests.RequestException, CircleApiError) as err:
            print(f"error getting build statistics: {err}")
        else:
            self._show_final_statistics(detail)
        print(f"""Build on {self.branch} succeeded!

Tests on {self.branch} took {format_elapsed(duration)}. Quitting.""")
        self._notifier.display(f"{self.branch} build complete!")
        return Success(duration)

    def _handle_failed(self, latest, duration):
        self._wait_for_first_rebase_check()
        self._apply_pending_rebase()
        try:
            detail = self._get_detail(latest)
        except (requests.RequestException, CircleApiError) as err:
            print(f"error getting build stats: {err}")
            raise
        self._show_final_statistics(detail)

        texts = []
        with self._scope.child(timeout=self._timings.failure_text_timeout) as failure_scope:
            try:
                texts = self._client.failure_texts(detail, failure_scope)
            except OperationCancelled:
                raise
            except (requests.RequestException, CircleWaitError, TimeoutError) as err:
                print(f"error getting build failures: {err}")
        print("\nOutput from failed builds:\n")
        for text in texts:
            print(text)
        print(f"\nURL: {latest.build_url}")
        self._notifier.display("build failed")
        return Failure(duration, texts, latest.build_url)

    def _handle_running(self, latest, duration):
        try:
            detail = self._get_detail(latest)
        except (requests.RequestException, CircleApiError, OSError) as err:
            print(f"Caught network error: {err}. Continuing")
            self._lines_drawn += 1
            return
        if self._display.interactive:
            self._lines_drawn = self._display.draw(detail, self._lines_drawn)
        else:
            print(f"Build {latest.build_num} running ({format_elapsed(duration)} elapsed)")
            self._lines_drawn += 1
        if not self._has_opened_failed_build:
            self._wait_for_first_rebase_check()
            self._apply_pending_rebase()
            action = detail.first_failed_action()
            if action is not None:
                url = failed_container_url(latest.build_url, action)
                if self._open_browser(url):
                    self._has_opened_failed_build = True

    def _handle_not_running(self, latest, duration):
        self._wait_for_first_rebase_check()
        self._apply_pending_rebase()
        now = self._clock()
        if (self._last_printed_at is None
                or now - self._last_printed_at >= self._timings.status_print_interval):
            cost = format_cents(self._cost_fn(duration))
            print(f"Status is {latest.status} (queued for {format_elapsed(duration)}, "
                  f"cost {cost}), trying again")
            self._last_printed_at = now

    def _apply_pending_rebase(self):
        """Rebase onto the upstream commit the watcher found, if any.

        Raises RemoteChanged once the rebased branch has been pushed.
        """
        if self._rebase_state is None:
            return
        if not self._rebase_state.pending():
            return
        remote_ref = self._opts.rebase_ref
        print(f"Remote branch {remote_ref} has changed, rebasing {self.branch} on top of it")
        try:
            self._git_repo.rebase(
                remote_ref, self.branch,
                timeout=self._timings.rebase_timeout, scope=self._scope,
            )
        except RebaseFailedError as err:
            print(f"""Remote branch {remote_ref} changed, and automatic rebase failed.

Rebase output was:

{err.output}""")
            if err.aborted:
                print("Rebase was aborted. Quitting.")
            else:
                print(f"""Attempted to abort, but abort failed. git rebase --abort output was:

{err.abort_output}""")
            self._notifier_or_default().display("rebase failed")
            raise
        try:
            self._git_repo.force_push(
                self.branch, self._opts.remote,
                timeout=self._timings.push_timeout, scope=self._scope,
            )
        except PushFailedError as err:
            print(f"""Remote branch {remote_ref} changed, we performed a local rebase but push failed.

Push output was:

{err.output}""")
            self._notifier_or_default().display("push after rebase failed")
            raise
        self._rebase_state.clear()
        raise RemoteChanged(f"{remote_ref} changed")

    def _notifier_or_default(self):
        if self._notifier is None:
            self._notifier = self._notifier_factory(f"{self._remote.project} (circlewait)", "")
        return self._notifier

    def _sleep_between_polls(self, latest):
        """Wait poll_interval, refreshing the elapsed line while the build runs."""
        deadline = time.monotonic() + self._timings.poll_interval
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            if not (latest.running and self._display.interactive):
                self._sleep(remaining)
                return
            self._sleep(min(self._timings.tick_interval, remaining))
            self._display.rewrite_trailer(
                running_line(latest.build_num, latest.elapsed()),
            )


def wait_for_build(opts: WaitOpts, circle_client, git_repo, scope: CancelScope,
                   display: Optional[TerminalDisplay] = None, **waiter_kwargs):
    """Wait for the branch's build, starting over whenever a rebase changed it.

    Returns Success, Failure or Cancelled; fatal errors propagate.
    """
    if display is None:
        display = TerminalDisplay(interactive=opts.interactive)
    with display:
        while True:
            outcome = BuildWaiter(
                opts, circle_client, git_repo, display, scope, **waiter_kwargs,
            ).run()
            if not isinstance(outcome, ChangedRemote):
                return outcome
            if scope.wait(opts.timings.restart_delay):
                return Cancelled()
