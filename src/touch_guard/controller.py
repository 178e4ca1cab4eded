"""Training and inference control loops.

Both loops are strictly sequential chains of await points (capture, embed,
store/classify, fixed delay) and share one frame source and one example
store, so the caller must never run them at the same time (see ``Session``).
"""
from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Optional

from .alerts import AlertGate
from .camera import FrameSource
from .errors import ClassificationError, DeviceUnavailableError, EmptyStoreError, ExtractionError
from .features import FeatureExtractor
from .logging_utils import log
from .models import ClassificationResult, Label
from .store import ExampleStore

Sleep = Callable[[float], Awaitable[None]]
CycleCallback = Callable[[bool, Optional[ClassificationResult]], None]


async def sleep_ms(ms: float) -> None:
    await asyncio.sleep(max(0.0, ms) / 1000.0)


def is_touched(result: ClassificationResult, threshold: float = 0.8) -> bool:
    """Touched iff TOUCHED won the vote and its confidence is strictly above ``threshold``."""
    return result.label is Label.TOUCHED and result.confidence(Label.TOUCHED) > threshold


class TrainingController:
    def __init__(self, source: FrameSource, extractor: FeatureExtractor, store: ExampleStore, *,
                 delay_ms: float = 100, default_count: int = 50, sleep: Sleep = sleep_ms, log_level: str = 'info'):
        self.source = source
        self.extractor = extractor
        self.store = store
        self.delay_ms = delay_ms
        self.default_count = default_count
        self.sleep = sleep
        self.log_level = log_level

    async def train(self, label: Label, count: Optional[int] = None) -> int:
        """Add ``count`` examples of ``label``, one frame at a time.

        Calls are additive: training a label again adds to its examples and
        biases later predictions towards it. Any collaborator error aborts the
        run; examples already added stay in the store.
        """
        count = self.default_count if count is None else count
        if count < 0:
            raise ValueError('count must be >= 0')
        log(f'[{label.name}] training on {count} frames', cfg_level=self.log_level)
        for i in range(count):
            frame = self.source.current_frame()
            embedding = self.extractor.embed(frame)
            self.store.add_example(embedding, label)
            log(f'[{label.name}] progress {int((i + 1) / count * 100)}%', 'debug', cfg_level=self.log_level)
            await self.sleep(self.delay_ms)
        log(f'[{label.name}] training done', cfg_level=self.log_level)
        return count


class InferenceLoop:
    def __init__(self, source: FrameSource, extractor: FeatureExtractor, store: ExampleStore, gate: AlertGate, *,
                 threshold: float = 0.8, delay_ms: float = 200, sleep: Sleep = sleep_ms,
                 on_cycle: Optional[CycleCallback] = None, max_capture_failures: int = 25, log_level: str = 'info'):
        self.source = source
        self.extractor = extractor
        self.store = store
        self.gate = gate
        self.threshold = threshold
        self.delay_ms = delay_ms
        self.sleep = sleep
        self.on_cycle = on_cycle
        self.max_capture_failures = max_capture_failures
        self.log_level = log_level
        self.touched = False
        self.last_result: Optional[ClassificationResult] = None
        self.cycles = 0
        self.skipped_cycles = 0
        self.capture_failures = 0
        self._stopping = False

    def stop(self) -> None:
        self._stopping = True

    def step(self) -> bool:
        """One capture -> classify -> decide pass. Returns the touched decision."""
        frame = self.source.current_frame()
        embedding = self.extractor.embed(frame)
        result = self.store.predict(embedding)
        self.last_result = result
        touched = is_touched(result, self.threshold)
        log(f'label={result.label.name} confidences={result.as_dict()["confidences"]}', 'debug', cfg_level=self.log_level)
        if touched:
            self.gate.fire()
        self.touched = touched
        if self.on_cycle is not None:
            self.on_cycle(touched, result)
        return touched

    async def run(self) -> None:
        self._stopping = False
        log('Inference started', cfg_level=self.log_level)
        try:
            while not self._stopping:
                try:
                    self.step()
                    self.capture_failures = 0
                except DeviceUnavailableError as e:
                    self.capture_failures += 1
                    if self.capture_failures > self.max_capture_failures:
                        log(f'Camera lost after {self.capture_failures} failed reads: {e}', 'error', cfg_level=self.log_level)
                        raise
                    self.skipped_cycles += 1
                    log(f'Dropped frame in cycle {self.cycles}: {e}', 'warn', cfg_level=self.log_level)
                except EmptyStoreError:
                    log('No trained examples; inference paused', 'error', cfg_level=self.log_level)
                    raise
                except (ExtractionError, ClassificationError) as e:
                    self.skipped_cycles += 1
                    log(f'Skipping cycle {self.cycles}: {e}', 'warn', cfg_level=self.log_level)
                self.cycles += 1
                await self.sleep(self.delay_ms)
        finally:
            self.touched = False
            log(f'Inference stopped after {self.cycles} cycles ({self.skipped_cycles} skipped)', cfg_level=self.log_level)
