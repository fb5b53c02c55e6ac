"""Exceptions raised while waiting for builds, and the retry classifier."""

import socket

import requests


class CircleWaitError(Exception):
    """Base class for errors reported to the user."""


class CircleApiError(CircleWaitError):
    """CircleCI answered with a 4xx/5xx response."""

    def __init__(self, status_code, message):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Request failed with status [{status_code}]: {message}")


class UnknownVcsError(CircleWaitError):
    """The git remote points at a host CircleCI does not build from."""

    def __init__(self, host):
        self.host = host
        super().__init__(f"can't find VCS type for unknown host {host}")


class NoBuildsError(CircleWaitError):
    pass


class GitOperationError(CircleWaitError):
    """A git command exited non-zero. `output` holds its combined output."""

    def __init__(self, message, output=""):
        self.output = output
        super().__init__(message)


class RebaseFailedError(GitOperationError):

    def __init__(self, message, output="", abort_output="", aborted=True):
        self.abort_output = abort_output
        self.aborted = aborted
        super().__init__(message, output)


class PushFailedError(GitOperationError):
    pass


class DataInconsistencyError(CircleWaitError):
    """A build record has no timestamp an elapsed time can be computed from."""

    def __init__(self, message, record=None):
        self.record = record
        super().__init__(message)


class OperationCancelled(CircleWaitError):
    """The enclosing CancelScope was cancelled."""


class RemoteChanged(CircleWaitError):
    """The branch was rebased and pushed; the wait loop must start over."""


def is_cancellation(err) -> bool:
    return isinstance(err, OperationCancelled)


def is_retryable(err) -> bool:
    """Return True if err is a transient network failure worth retrying.

    Connection and DNS failures and timeouts are retryable. TLS errors and
    API error responses are not.
    """
    if err is None:
        return False
    if isinstance(err, CircleApiError):
        return False
    if isinstance(err, requests.exceptions.SSLError):
        return False
    if isinstance(err, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(err, (socket.gaierror, ConnectionRefusedError)):
        return True
    return isinstance(err, (TimeoutError, socket.timeout))
