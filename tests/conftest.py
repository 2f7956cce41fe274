"""
Test configuration: puts the repo root and the test helpers on sys.path, provides shared fakes.
"""

import sys
from pathlib import Path
from typing import List

import pytest

TESTS_DIR = Path(__file__).parent
REPO_ROOT = TESTS_DIR.parent
for path in (REPO_ROOT, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from core.events import EventBus  # noqa: E402
from modules.time_source import Instant, SyncUnavailable  # noqa: E402


class FakeTimeSource:
    """Returns queued instants; a queued exception is raised instead."""

    def __init__(self, *results):
        self.results: List = list(results)
        self.calls = 0

    def fetch(self) -> Instant:
        self.calls += 1
        if not self.results:
            raise SyncUnavailable("no time queued")
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def march_fifth():
    """2024-03-05T13:07:09Z"""
    return Instant(1709644029000)


@pytest.fixture
def fake_source():
    """Factory: ``fake_source(instant, SyncUnavailable(...), ...)``."""
    return FakeTimeSource
