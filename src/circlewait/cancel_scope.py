"""CancelScope: cooperative cancellation and deadlines for blocking calls.

Scopes form a tree. Cancelling a scope cancels every scope created from it.
A child scope may carry a deadline; timeout_for() turns the nearest deadline
into a timeout suitable for requests or subprocess.
"""

import threading
import time
from contextlib import contextmanager
from typing import Optional

from circlewait.errors import OperationCancelled


class CancelScope:

    def __init__(self, parent: Optional["CancelScope"] = None, timeout: Optional[float] = None):
        self._parent = parent
        self._event = threading.Event()
        self._children = set()
        self._lock = threading.Lock()
        self._deadline = None
        if timeout is not None:
            self._deadline = time.monotonic() + timeout
        if parent is not None:
            parent._add_child(self)

    def _add_child(self, child):
        with self._lock:
            self._children.add(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()

    def _remove_child(self, child):
        with self._lock:
            self._children.discard(child)

    def cancel(self):
        """Cancel this scope and all of its children."""
        self._event.set()
        with self._lock:
            children = list(self._children)
        for child in children:
            child.cancel()

    def close(self):
        """Detach this scope from its parent."""
        if self._parent is not None:
            self._parent._remove_child(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def remaining(self) -> Optional[float]:
        """Seconds until the nearest deadline in this scope or its ancestors."""
        remaining = None
        scope = self
        now = time.monotonic()
        while scope is not None:
            if scope._deadline is not None:
                left = scope._deadline - now
                if remaining is None or left < remaining:
                    remaining = left
            scope = scope._parent
        return remaining

    def check(self):
        """Raise OperationCancelled if this scope has been cancelled."""
        if self.cancelled:
            raise OperationCancelled("operation cancelled")

    def timeout_for(self, seconds: float) -> float:
        """Return a timeout no longer than seconds or any enclosing deadline."""
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return seconds
        if remaining <= 0:
            raise TimeoutError("deadline exceeded")
        return min(seconds, remaining)

    def wait(self, seconds: float) -> bool:
        """Sleep for seconds. Returns True early if the scope is cancelled."""
        return self._event.wait(seconds)

    def wait_for(self, event: threading.Event, poll_interval: float = 0.05) -> bool:
        """Block until event is set. Returns False if cancelled first."""
        while not event.wait(poll_interval):
            if self.cancelled:
                return False
        return True

    @contextmanager
    def child(self, timeout: Optional[float] = None):
        """Yield a child scope, cancelled and detached on exit."""
        scope = CancelScope(parent=self, timeout=timeout)
        try:
            yield scope
        finally:
            scope.cancel()
            scope.close()
