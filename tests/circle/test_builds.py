"""Tests for build records and their status predicates."""

from datetime import datetime, timedelta, timezone

import pytest

from circlewait.circle.builds import (
    Action,
    BuildDetail,
    BuildStatus,
    BuildSummary,
    Step,
    failed_container_url,
)
from circlewait.errors import DataInconsistencyError

QUEUED = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestBuildStatus:

    @pytest.mark.parametrize("status", ["success", "fixed"])
    def test_passed(self, status):
        assert BuildStatus.parse(status).passed

    @pytest.mark.parametrize("status", ["failed", "timedout", "no_tests", "infrastructure_fail"])
    def test_failed(self, status):
        assert BuildStatus.parse(status).failed

    @pytest.mark.parametrize("status", ["not_running", "scheduled", "queued"])
    def test_not_running(self, status):
        assert BuildStatus.parse(status).not_running

    def test_running(self):
        assert BuildStatus.parse("running").running

    def test_unrecognized_status_is_unknown(self):
        status = BuildStatus.parse("some_new_status")
        assert status is BuildStatus.UNKNOWN
        assert not (status.passed or status.failed or status.running or status.not_running)

    def test_none_is_unknown(self):
        assert BuildStatus.parse(None) is BuildStatus.UNKNOWN


@pytest.mark.unit
class TestBuildSummaryFromJson:

    def test_decodes_tree_entry(self):
        build = BuildSummary.from_json({
            "build_num": 42,
            "status": "running",
            "build_url": "https://circleci.com/gh/acme/widgets/42",
            "compare": "https://github.com/acme/widgets/compare/a...b",
            "vcs_revision": "1d79f2b877c86ac0964f3fe69a0171926aa6f1d8",
            "queued_at": "2024-05-01T12:00:00.000Z",
            "start_time": None,
            "stop_time": None,
            "usage_queued_at": None,
            "username": "acme",
            "reponame": "widgets",
            "vcs_type": "github",
        })
        assert build.build_num == 42
        assert build.running
        assert build.compare_url.endswith("a...b")
        assert build.queued_at == QUEUED
        assert build.stop_time is None


@pytest.mark.unit
class TestElapsed:

    def test_uses_queued_at_until_stop_time(self):
        build = BuildSummary(1, "success", queued_at=QUEUED,
                             stop_time=QUEUED + timedelta(minutes=3))
        assert build.elapsed() == timedelta(minutes=3)

    def test_uses_queued_at_until_now_while_running(self):
        build = BuildSummary(1, "running", queued_at=QUEUED)
        assert build.elapsed(now=QUEUED + timedelta(seconds=45)) == timedelta(seconds=45)

    def test_falls_back_to_usage_queued_at(self):
        build = BuildSummary(1, "running", usage_queued_at=QUEUED)
        assert build.elapsed(now=QUEUED + timedelta(seconds=5)) == timedelta(seconds=5)

    def test_not_running_without_timestamps_is_zero(self):
        assert BuildSummary(1, "not_running").elapsed() == timedelta(0)

    def test_running_without_timestamps_is_a_data_inconsistency(self, capsys):
        build = BuildSummary(1, "running", raw={"build_num": 1, "status": "running"})
        with pytest.raises(DataInconsistencyError) as exc_info:
            build.elapsed()
        assert exc_info.value.record == {"build_num": 1, "status": "running"}
        assert '"status": "running"' in capsys.readouterr().out

    def test_queued_without_timestamps_is_a_data_inconsistency(self):
        with pytest.raises(DataInconsistencyError):
            BuildSummary(1, "queued").elapsed()


@pytest.mark.unit
class TestBuildDetail:

    def _data(self, platform):
        return {
            "build_num": 9,
            "status": "failed",
            "parallel": 2,
            "platform": platform,
            "queued_at": "2024-05-01T12:00:00Z",
            "steps": [
                {"name": "Checkout", "actions": [
                    {"name": "Checkout", "index": 0, "step": 0, "run_time_millis": 120, "failed": None},
                ]},
                {"name": "Tests", "actions": [
                    {"name": "Tests", "index": 0, "step": 104, "run_time_millis": None, "failed": None},
                    {"name": "Tests", "index": 1, "step": 104, "run_time_millis": 900, "failed": True},
                ]},
            ],
        }

    def test_null_runtime_is_unknown(self):
        build = BuildDetail.from_json(self._data("2.0"))
        assert build.steps[1].actions[0].runtime_ms is None
        assert build.steps[0].actions[0].runtime_ms == 120

    def test_failures_use_action_step_on_platform_2(self):
        assert BuildDetail.from_json(self._data("2.0")).failures() == [(104, 1)]

    def test_failures_use_step_position_on_older_platforms(self):
        assert BuildDetail.from_json(self._data("1.0")).failures() == [(1, 1)]

    def test_first_failed_action(self):
        action = BuildDetail.from_json(self._data("2.0")).first_failed_action()
        assert action.index == 1

    def test_failed_container_url(self):
        action = Action("Tests", 3, failed=True)
        assert failed_container_url("https://circleci.com/gh/a/b/9", action) == \
            "https://circleci.com/gh/a/b/9#tests/containers/3"

    def test_no_failed_action(self):
        build = BuildDetail(9, "success", steps=[Step("Checkout", [Action("Checkout", 0)])])
        assert build.first_failed_action() is None
