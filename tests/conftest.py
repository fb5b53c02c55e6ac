"""Shared fixtures for circlewait tests."""

import os
import sys

# Ensure tests/fakes/ is on sys.path so test files can import the fakes
# unambiguously (avoids conftest module name collisions).
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "fakes"))

from fake_circle_client import FakeCircleClient  # noqa: E402, F401
from fake_git_repository import FakeGitRepository  # noqa: E402, F401
from fake_notifier import FakeNotifierFactory  # noqa: E402, F401
