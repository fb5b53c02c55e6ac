"""Options dataclasses for the wait command."""

from dataclasses import dataclass, field


@dataclass
class WaitTimings:
    """Delays and deadlines used by the wait loop, in seconds."""

    startup_delay: float = 1
    poll_interval: float = 3
    tick_interval: float = 0.2
    network_retry_delay: float = 2
    tip_mismatch_delay: float = 5
    force_push_delay: float = 7
    restart_delay: float = 7
    status_print_interval: float = 12
    rebase_check_interval: float = 10
    rebase_check_timeout: float = 60
    request_timeout: float = 20
    failure_text_timeout: float = 20
    rebase_timeout: float = 30
    push_timeout: float = 60


@dataclass
class WaitOpts:
    """All options for the wait command."""

    branch: str
    remote: str = "origin"
    rebase_against: str | None = None
    interactive: bool | None = None
    timings: WaitTimings = field(default_factory=WaitTimings)

    @property
    def rebase_ref(self) -> str | None:
        if not self.rebase_against:
            return None
        return f"{self.remote}/{self.rebase_against}"
