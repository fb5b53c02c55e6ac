"""What a build costs in engineer time spent waiting for it."""

from datetime import timedelta

DEFAULT_HOURLY_RATE_CENTS = 150 * 100


def effective_cost_cents(duration: timedelta, hourly_rate_cents: int = DEFAULT_HOURLY_RATE_CENTS) -> int:
    seconds = max(duration.total_seconds(), 0)
    return int(seconds * hourly_rate_cents / 3600)


def format_cents(cents: int) -> str:
    dollars, cents = divmod(cents, 100)
    return f"${dollars}.{cents:02d}"
