import pytest


class FakeClock:
    def __init__(self, initial: float = 1_000_000.0):
        self._value = initial

    def now(self) -> float:
        return self._value

    def advance(self, seconds: float) -> None:
        self._value += seconds


@pytest.fixture
def clock():
    return FakeClock()


class RecordingRefresher:
    """Counts callback invocations and optionally writes a new value."""

    def __init__(self, produce=None):
        self.cache = None
        self.calls = []
        self.produce = produce

    def __call__(self, key):
        self.calls.append(key)
        if self.produce is not None:
            self.cache.set(key, self.produce(key, len(self.calls)))


@pytest.fixture
def refresher():
    return RecordingRefresher()
