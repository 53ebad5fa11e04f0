"""
Shared Test Fixtures for the analysis service

Fixtures include a controllable clock, a recording timer that never fires
on its own, lexicon files in tmp_path, post factories and a fully wired
pipeline context.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from feedguard.core.context import PipelineContext
from feedguard.core.lexicon import LexiconStore
from feedguard.models import Outcome, Post
from feedguard.schemas import RuntimeConfig
from feedguard.services.remote import RemoteClassifier


# =============================================================================
# Clock and Timer Fixtures
# =============================================================================

class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeHandle:
    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimer:
    """
    Records armed timers instead of scheduling them on the loop.

    Tests fire the most recent live timer explicitly with ``fire()``.
    """

    def __init__(self):
        self.handles: List[FakeHandle] = []

    def __call__(self, delay: float, callback) -> FakeHandle:
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def live(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    def fire(self) -> None:
        handle = self.live[-1]
        handle.cancelled = True
        handle.callback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer():
    return FakeTimer()


# =============================================================================
# Lexicon Fixtures
# =============================================================================

DEFAULT_TEST_LEXICON: Dict[str, Any] = {
    "aggression_violence": ["kill", "beat up"],
    "scam_solicitation": ["free money", "dm me"],
    "misinfo_speculation": ["hoax"],
}


@pytest.fixture
def write_lexicon(tmp_path):
    """Write a lexicon JSON file and return its path."""
    def _write(data: Any, name: str = "lexicon.json") -> str:
        path = tmp_path / name
        if isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        else:
            path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
async def lexicon_store(write_lexicon):
    store = LexiconStore(write_lexicon(DEFAULT_TEST_LEXICON))
    await store.load()
    return store


# =============================================================================
# Post Factories
# =============================================================================

def make_post(post_id: str, text: str = "", author: Optional[str] = "@someone") -> Post:
    return Post(
        id=post_id,
        text=text,
        captured_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        author=author,
    )


@pytest.fixture
def post_factory():
    return make_post


# =============================================================================
# Pipeline Fixtures
# =============================================================================

@pytest.fixture
def remote_mock():
    """RemoteClassifier stand-in whose classify() fails unless told otherwise."""
    remote = AsyncMock(spec=RemoteClassifier)
    remote.classify.return_value = Outcome.failure("not configured in test")
    return remote


@pytest.fixture
async def context(lexicon_store, remote_mock, clock, timer):
    ctx = PipelineContext(
        lexicon_store=lexicon_store,
        remote=remote_mock,
        clock=clock,
        timer=timer,
    )
    ctx.config = RuntimeConfig()
    return ctx


def remote_config_patch(**remote: Any) -> Dict[str, Any]:
    base = {"enabled": True, "credential": "sk-test-credential-1234"}
    base.update(remote)
    return {"analysisMode": "remote-assisted", "remote": base}
