"""Build records decoded from the CircleCI v1.1 API."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from circlewait.errors import DataInconsistencyError


class BuildStatus(Enum):
    SUCCESS = "success"
    FIXED = "fixed"
    FAILED = "failed"
    TIMEDOUT = "timedout"
    NO_TESTS = "no_tests"
    INFRASTRUCTURE_FAIL = "infrastructure_fail"
    RUNNING = "running"
    NOT_RUNNING = "not_running"
    SCHEDULED = "scheduled"
    QUEUED = "queued"
    CANCELED = "canceled"
    NOT_RUN = "not_run"
    RETRIED = "retried"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, text: Optional[str]) -> "BuildStatus":
        """Map a status string to a member; anything unrecognized is UNKNOWN."""
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN

    @property
    def passed(self) -> bool:
        return self in _PASSED

    @property
    def failed(self) -> bool:
        return self in _FAILED

    @property
    def running(self) -> bool:
        return self is BuildStatus.RUNNING

    @property
    def not_running(self) -> bool:
        return self in _NOT_RUNNING


_PASSED = frozenset({BuildStatus.SUCCESS, BuildStatus.FIXED})
_FAILED = frozenset({
    BuildStatus.FAILED,
    BuildStatus.TIMEDOUT,
    BuildStatus.NO_TESTS,
    BuildStatus.INFRASTRUCTURE_FAIL,
})
_NOT_RUNNING = frozenset({BuildStatus.NOT_RUNNING, BuildStatus.SCHEDULED, BuildStatus.QUEUED})


def parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return date_parser.isoparse(value)


def _elapsed(record, now: Optional[datetime]) -> timedelta:
    """Best estimate of the time since CircleCI found out about the build."""
    if now is None:
        now = datetime.now(timezone.utc)
    for started in (record.queued_at, record.usage_queued_at):
        if started is not None:
            end = record.stop_time if record.stop_time is not None else now
            return end - started
    if record.status == BuildStatus.NOT_RUNNING.value:
        return timedelta(0)
    print(json.dumps(record.raw, indent=4, sort_keys=True, default=str))
    raise DataInconsistencyError(
        f"could not find elapsed time for build {record.build_num} (status {record.status!r})",
        record=record.raw,
    )


class _StatusPredicates:
    """Status predicates shared by BuildSummary and BuildDetail."""

    @property
    def build_status(self) -> BuildStatus:
        return BuildStatus.parse(self.status)

    @property
    def passed(self) -> bool:
        return self.build_status.passed

    @property
    def failed(self) -> bool:
        return self.build_status.failed

    @property
    def running(self) -> bool:
        return self.build_status.running

    @property
    def not_running(self) -> bool:
        return self.build_status.not_running

    def elapsed(self, now: Optional[datetime] = None) -> timedelta:
        return _elapsed(self, now)


@dataclass(frozen=True)
class BuildSummary(_StatusPredicates):
    """One entry of the branch build list (the "tree" endpoint)."""

    build_num: int
    status: str
    build_url: str = ""
    compare_url: str = ""
    vcs_revision: str = ""
    queued_at: Optional[datetime] = None
    usage_queued_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    stop_time: Optional[datetime] = None
    username: str = ""
    reponame: str = ""
    vcs_type: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "BuildSummary":
        return cls(
            build_num=data.get("build_num", 0),
            status=data.get("status") or "",
            build_url=data.get("build_url") or "",
            compare_url=data.get("compare") or "",
            vcs_revision=data.get("vcs_revision") or "",
            queued_at=parse_time(data.get("queued_at")),
            usage_queued_at=parse_time(data.get("usage_queued_at")),
            start_time=parse_time(data.get("start_time")),
            stop_time=parse_time(data.get("stop_time")),
            username=data.get("username") or "",
            reponame=data.get("reponame") or "",
            vcs_type=data.get("vcs_type") or "",
            raw=data,
        )


@dataclass(frozen=True)
class Action:
    """One container's run of a step."""

    name: str
    index: int
    status: str = ""
    failed: bool = False
    step: int = 0
    runtime_ms: Optional[int] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Action":
        return cls(
            name=data.get("name") or "",
            index=data.get("index") or 0,
            status=data.get("status") or "",
            failed=bool(data.get("failed")),
            step=data.get("step") or 0,
            runtime_ms=data.get("run_time_millis"),
        )


@dataclass(frozen=True)
class Step:
    name: str
    actions: List[Action] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Step":
        return cls(
            name=data.get("name") or "",
            actions=[Action.from_json(a) for a in data.get("actions") or []],
        )


@dataclass(frozen=True)
class BuildDetail(_StatusPredicates):
    """A full build record, including per-step, per-container timings."""

    build_num: int
    status: str
    parallel: int = 1
    platform: str = ""
    build_url: str = ""
    queued_at: Optional[datetime] = None
    usage_queued_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    stop_time: Optional[datetime] = None
    username: str = ""
    reponame: str = ""
    vcs_type: str = ""
    steps: List[Step] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "BuildDetail":
        return cls(
            build_num=data.get("build_num", 0),
            status=data.get("status") or "",
            parallel=data.get("parallel") or 1,
            platform=data.get("platform") or "",
            build_url=data.get("build_url") or "",
            queued_at=parse_time(data.get("queued_at")),
            usage_queued_at=parse_time(data.get("usage_queued_at")),
            start_time=parse_time(data.get("start_time")),
            stop_time=parse_time(data.get("stop_time")),
            username=data.get("username") or "",
            reponame=data.get("reponame") or "",
            vcs_type=data.get("vcs_type") or "",
            steps=[Step.from_json(s) for s in data.get("steps") or []],
            raw=data,
        )

    def failures(self):
        """Return (step_id, action_position) pairs for every failed action.

        Platform 2.0 builds address output by the action's own step number;
        older builds use the step's position in the list.
        """
        failures = []
        for i, step in enumerate(self.steps):
            for j, action in enumerate(step.actions):
                if action.failed:
                    step_id = action.step if self.platform == "2.0" else i
                    failures.append((step_id, j))
        return failures

    def first_failed_action(self) -> Optional[Action]:
        for step in self.steps:
            for action in step.actions:
                if action.failed:
                    return action
        return None


def failed_container_url(build_url: str, action: Action) -> str:
    return f"{build_url}#tests/containers/{action.index}"
