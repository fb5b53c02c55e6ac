"""Helpers that build BuildSummary and BuildDetail records for tests."""

from datetime import datetime, timedelta, timezone

from circlewait.circle.builds import Action, BuildDetail, BuildSummary, Step
from circlewait.wait.wait_opts import WaitTimings

BUILD_URL = "https://circleci.com/gh/acme/widgets/{num}"


def minutes_ago(minutes):
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


def summary(num, status, revision="abc123", queued_at=None, stop_time=None, **kwargs):
    if queued_at is None and "usage_queued_at" not in kwargs:
        queued_at = minutes_ago(2)
    return BuildSummary(
        build_num=num,
        status=status,
        build_url=BUILD_URL.format(num=num),
        vcs_revision=revision,
        queued_at=queued_at,
        stop_time=stop_time,
        username="acme",
        reponame="widgets",
        vcs_type="github",
        **kwargs,
    )


def detail(num, status, steps=None, parallel=2, queued_at=None, **kwargs):
    if queued_at is None:
        queued_at = minutes_ago(2)
    if steps is None:
        steps = [
            Step("Checkout code", [Action("Checkout code", 0, runtime_ms=1200),
                                   Action("Checkout code", 1, runtime_ms=1300)]),
        ]
    return BuildDetail(
        build_num=num,
        status=status,
        parallel=parallel,
        build_url=BUILD_URL.format(num=num),
        queued_at=queued_at,
        username="acme",
        reponame="widgets",
        vcs_type="github",
        steps=steps,
        **kwargs,
    )


def failed_step(index=1, name="Run tests"):
    return Step(name, [
        Action(name, 0, status="success", runtime_ms=5000),
        Action(name, index, status="failed", failed=True, runtime_ms=6000),
    ])


def fast_timings(**overrides):
    """WaitTimings with every delay shrunk so loop tests run in milliseconds."""
    values = dict(
        startup_delay=0,
        poll_interval=0.01,
        tick_interval=0.005,
        network_retry_delay=0.01,
        tip_mismatch_delay=0.01,
        force_push_delay=0.01,
        restart_delay=0.01,
        rebase_check_interval=0.01,
        rebase_check_timeout=5,
        request_timeout=5,
        failure_text_timeout=5,
        rebase_timeout=5,
        push_timeout=5,
    )
    values.update(overrides)
    return WaitTimings(**values)
