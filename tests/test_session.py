import asyncio

import numpy as np
import pytest

from touch_guard.alerts import AlertState
from touch_guard.camera import ArrayFrameSource
from touch_guard.errors import EmptyStoreError, ModeConflictError
from touch_guard.models import Label
from touch_guard.session import IDLE, INFERENCE, TRAINING, Session, open_session
from touch_guard.store import KnnExampleStore

from conftest import CLUSTER_A, CLUSTER_B, IdentityExtractor, RecordingSleep, cluster


def make_session(cfg, gate, frames, sleep=None):
    return Session(cfg, ArrayFrameSource(frames), IdentityExtractor(), KnnExampleStore(cfg.knn_k), gate,
                   sleep=sleep or RecordingSleep())


@pytest.mark.asyncio
async def test_end_to_end_touch_detection(cfg, gate, cue, notifier):
    near_a = np.array(CLUSTER_A, dtype=np.float32) + 0.02
    near_b = np.array(CLUSTER_B, dtype=np.float32) - 0.02
    frames = cluster(CLUSTER_A, 10, seed=1) + cluster(CLUSTER_B, 10, seed=2) + [near_a, near_b]
    session = make_session(cfg, gate, frames)

    await session.request_training(Label.NOT_TOUCHED, 10)
    await session.request_training(Label.TOUCHED, 10)
    assert session.status()['examples'] == {'NOT_TOUCHED': 10, 'TOUCHED': 10}

    assert session.loop.step() is False
    assert session.touched is False
    assert cue.plays == 0 and notifier.sent == []

    assert session.loop.step() is True
    assert session.touched is True
    assert session.loop.last_result.confidence(Label.TOUCHED) > 0.8
    assert cue.plays == 1
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_inference_refused_on_empty_store(cfg, gate):
    session = make_session(cfg, gate, [])
    with pytest.raises(EmptyStoreError):
        session.request_inference_start()
    assert session.mode == IDLE


@pytest.mark.asyncio
async def test_inference_refused_while_training(cfg, gate):
    release = asyncio.Event()

    async def blocking_sleep(ms):
        await release.wait()

    session = make_session(cfg, gate, cluster(CLUSTER_A, 5, seed=0), sleep=blocking_sleep)
    training = asyncio.ensure_future(session.request_training(Label.NOT_TOUCHED, 2))
    await asyncio.sleep(0)
    assert session.mode == TRAINING
    with pytest.raises(ModeConflictError):
        session.request_inference_start()
    with pytest.raises(ModeConflictError):
        await session.request_training(Label.TOUCHED, 1)
    release.set()
    assert await training == 2
    assert session.mode == IDLE


@pytest.mark.asyncio
async def test_training_refused_while_inference_runs(cfg, gate):
    async def yield_sleep(ms):
        await asyncio.sleep(0)

    session = make_session(cfg, gate, cluster(CLUSTER_A, 3, seed=0), sleep=yield_sleep)
    await session.request_training(Label.NOT_TOUCHED, 3)
    task = session.request_inference_start()
    await asyncio.sleep(0)
    assert session.mode == INFERENCE
    with pytest.raises(ModeConflictError):
        await session.request_training(Label.TOUCHED, 1)
    with pytest.raises(ModeConflictError):
        session.request_inference_start()
    with pytest.raises(ModeConflictError):
        session.clear_label(Label.NOT_TOUCHED)
    await session.stop_inference()
    assert task.done()
    assert session.mode == IDLE
    assert session.loop.cycles > 0
    assert session.touched is False


@pytest.mark.asyncio
async def test_listeners_see_each_cycle(cfg, gate):
    seen = []
    session = make_session(cfg, gate, cluster(CLUSTER_B, 4, seed=0))
    await session.request_training(Label.TOUCHED, 2)
    session.listeners.append(lambda touched, result: seen.append((touched, result.label)))
    session.loop.step()
    session.loop.step()
    assert seen == [(True, Label.TOUCHED)] * 2


@pytest.mark.asyncio
async def test_open_session_releases_on_exit(cfg, gate):
    class ReleasableSource(ArrayFrameSource):
        released = False

        def release(self):
            self.released = True

    source = ReleasableSource(cluster(CLUSTER_B, 3, seed=0))
    async with open_session(cfg, source=source, gate=gate) as session:
        session.gate.fire()
        assert session.gate.state is AlertState.COOLING_DOWN
    assert source.released is True
    assert gate.state is AlertState.ARMED


@pytest.mark.asyncio
async def test_status_reports_state(cfg, gate):
    session = make_session(cfg, gate, cluster(CLUSTER_A, 2, seed=0))
    await session.request_training(Label.NOT_TOUCHED, 2)
    st = session.status()
    assert st['mode'] == IDLE
    assert st['touched'] is False
    assert st['alert_state'] == 'armed'
    assert st['examples'] == {'NOT_TOUCHED': 2, 'TOUCHED': 0}
    assert st['last_result'] is None
