"""
Shared fixtures for all tests
"""
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from core.config import get_settings


class FakeClock:
    """Millisecond clock that only moves when told to"""

    def __init__(self, start_ms: float = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served"""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def mock_transport():
    """Build a RecordingTransport from a handler function"""
    return RecordingTransport


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are lru_cached; tests that patch the environment need a fresh instance"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
