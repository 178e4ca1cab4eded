import asyncio

import numpy as np
import pytest

from touch_guard.alerts import AlertGate
from touch_guard.config import GuardConfig


class FakeCue:
    """Records plays; completion is triggered by the test."""

    def __init__(self):
        self.plays = 0
        self.pending = []

    def play(self, on_finished):
        self.plays += 1
        self.pending.append(on_finished)

    def finish(self):
        self.pending.pop(0)()


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, title, body):
        self.sent.append((title, body))
        return True


class IdentityExtractor:
    """Frames in these tests are already embeddings."""

    def embed(self, frame):
        return np.asarray(frame, dtype=np.float32)


class RecordingSleep:
    """Counts delays; optionally stops a loop after ``stop_after`` sleeps."""

    def __init__(self, events=None, stop_after=None, loop=None):
        self.events = events if events is not None else []
        self.delays = []
        self.stop_after = stop_after
        self.loop = loop

    async def __call__(self, ms):
        self.delays.append(ms)
        self.events.append(('sleep', ms))
        await asyncio.sleep(0)
        if self.stop_after is not None and len(self.delays) >= self.stop_after:
            self.loop.stop()


@pytest.fixture
def cue():
    return FakeCue()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def gate(cue, notifier):
    return AlertGate(cue, notifier, title="Don't touch your face", body='You just touched your face!!!',
                     log_level='error')


@pytest.fixture
def cfg():
    return GuardConfig(log_level='error', training_examples=10)


def cluster(center, n, seed, spread=0.05):
    rng = np.random.default_rng(seed)
    return [np.asarray(center, dtype=np.float32) + rng.normal(0, spread, len(center)).astype(np.float32)
            for _ in range(n)]


CLUSTER_A = [1.0, 0.0, 0.0, 0.2]
CLUSTER_B = [0.0, 1.0, 0.3, 0.0]
