from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from .alerts import AlertGate, Notifier, SoundCue
from .camera import FrameSource, SyntheticFrameSource, open_camera
from .config import GuardConfig
from .controller import CycleCallback, InferenceLoop, Sleep, TrainingController, sleep_ms
from .errors import EmptyStoreError, ModeConflictError
from .features import FeatureExtractor, GrayThumbnailExtractor
from .logging_utils import log
from .models import ClassificationResult, Label
from .store import KnnExampleStore

IDLE, TRAINING, INFERENCE = 'idle', 'training', 'inference'


class Session:
    """Caller-facing boundary: training and inference never overlap."""

    def __init__(self, cfg: GuardConfig, source: FrameSource, extractor: FeatureExtractor, store: KnnExampleStore,
                 gate: AlertGate, *, sleep: Sleep = sleep_ms):
        self.cfg = cfg
        self.source = source
        self.store = store
        self.gate = gate
        self.mode = IDLE
        self.trainer = TrainingController(source, extractor, store, delay_ms=cfg.training_delay_ms,
                                          default_count=cfg.training_examples, sleep=sleep, log_level=cfg.log_level)
        self.loop = InferenceLoop(source, extractor, store, gate, threshold=cfg.touched_confidence,
                                  delay_ms=cfg.inference_delay_ms, sleep=sleep, on_cycle=self._on_cycle,
                                  max_capture_failures=cfg.max_capture_failures,
                                  log_level=cfg.log_level)
        self.listeners: List[CycleCallback] = []
        self._task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

    @property
    def touched(self) -> bool:
        return self.loop.touched

    def _on_cycle(self, touched: bool, result: Optional[ClassificationResult]) -> None:
        for listener in self.listeners:
            listener(touched, result)

    async def request_training(self, label: Label, count: Optional[int] = None) -> int:
        if self.mode != IDLE:
            raise ModeConflictError(f'Cannot train {label.name} while {self.mode} is running')
        self.mode = TRAINING
        try:
            return await self.trainer.train(label, count)
        finally:
            self.mode = IDLE

    def request_inference_start(self) -> asyncio.Task:
        """Start the inference loop as a background task on the running event loop."""
        if self.mode != IDLE:
            raise ModeConflictError(f'Cannot start inference while {self.mode} is running')
        if self.store.num_examples() == 0:
            raise EmptyStoreError('Not ready: train at least one example first')
        missing = [l.name for l, n in self.store.label_counts().items() if n == 0]
        if missing:
            log(f'No examples for {", ".join(missing)}; every frame will match the other label', 'warn',
                cfg_level=self.cfg.log_level)
        self.mode = INFERENCE
        self.last_error = None
        self._task = asyncio.get_running_loop().create_task(self.loop.run(), name='touch-guard-inference')
        self._task.add_done_callback(self._inference_done)
        return self._task

    def _inference_done(self, task: asyncio.Task) -> None:
        self.mode = IDLE
        if not task.cancelled() and task.exception() is not None:
            self.last_error = repr(task.exception())
            log(f'Inference ended with error: {self.last_error}', 'error', cfg_level=self.cfg.log_level)

    async def stop_inference(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        self.loop.stop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.mode = IDLE

    def clear_label(self, label: Label) -> int:
        if self.mode != IDLE:
            raise ModeConflictError(f'Cannot clear {label.name} while {self.mode} is running')
        removed = self.store.clear_label(label)
        log(f'Cleared {removed} {label.name} examples', cfg_level=self.cfg.log_level)
        return removed

    def status(self) -> Dict[str, Any]:
        last = self.loop.last_result
        return {
            'mode': self.mode,
            'touched': self.touched,
            'alert_state': self.gate.state.value,
            'alert_episodes': self.gate.episodes,
            'examples': {l.name: n for l, n in self.store.label_counts().items()},
            'cycles': self.loop.cycles,
            'skipped_cycles': self.loop.skipped_cycles,
            'last_result': last.as_dict() if last else None,
            'last_error': self.last_error,
        }

    async def close(self) -> None:
        await self.stop_inference()
        self.gate.reset()
        release = getattr(self.source, 'release', None)
        if release is not None:
            release()


def build_gate(cfg: GuardConfig) -> AlertGate:
    notifier = Notifier(cfg.notify_cooldown_ms, log_level=cfg.log_level)
    cue = SoundCue(cfg.sound_path, bell_seconds=cfg.bell_seconds, timeout_seconds=cfg.cue_timeout_seconds,
                   log_level=cfg.log_level)
    return AlertGate(cue, notifier, title=cfg.alert_title, body=cfg.alert_body, log_level=cfg.log_level)


@asynccontextmanager
async def open_session(cfg: GuardConfig, *, synthetic: bool = False, source: Optional[FrameSource] = None,
                       gate: Optional[AlertGate] = None) -> AsyncIterator[Session]:
    """Acquire camera, extractor, store and alert channels; release them on exit.

    Raises DeviceUnavailableError before yielding when no camera is usable.
    """
    if source is None:
        source = SyntheticFrameSource(cfg.frame_size) if synthetic else open_camera(cfg)
    session = Session(cfg, source, GrayThumbnailExtractor(cfg.embedding_size), KnnExampleStore(cfg.knn_k),
                      gate or build_gate(cfg))
    log('Setup done', cfg_level=cfg.log_level)
    try:
        yield session
    finally:
        await session.close()
