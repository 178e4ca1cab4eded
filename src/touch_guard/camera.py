from __future__ import annotations
import time
from typing import Iterable, Iterator, Optional, Protocol
import numpy as np

try:
    import cv2  # type: ignore
except ImportError:  # pragma: no cover
    cv2 = None

from .config import GuardConfig
from .errors import DeviceUnavailableError
from .logging_utils import log


class FrameSource(Protocol):
    def current_frame(self) -> np.ndarray: ...


class CameraFrameSource:
    """Latest frame from an OpenCV capture device."""

    def __init__(self, cap, cfg: GuardConfig):
        self.cap = cap
        self.cfg = cfg
        self.last_frame: Optional[np.ndarray] = None

    def current_frame(self) -> np.ndarray:
        ok, frame = self.cap.read()
        if not ok or frame is None:
            raise DeviceUnavailableError(f'Camera {self.cfg.camera_index} stopped delivering frames')
        self.last_frame = frame
        return frame

    def release(self) -> None:
        try:
            self.cap.release()
        except Exception as e:  # pragma: no cover
            log(f'Camera release failed: {e}', 'warn', cfg_level=self.cfg.log_level)


def open_camera(cfg: GuardConfig) -> CameraFrameSource:
    """Open the capture device and wait for its first frame."""
    if cv2 is None:
        raise DeviceUnavailableError("OpenCV not available. Install with: pip install opencv-python")
    cap = cv2.VideoCapture(cfg.camera_index)
    if not cap.isOpened():
        raise DeviceUnavailableError(f'Could not open camera {cfg.camera_index} (missing device or permission)')
    w, h = cfg.frame_size
    try:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
    except Exception as e:  # pragma: no cover
        log(f'Setting frame size failed (continuing): {e}', 'warn', cfg_level=cfg.log_level)
    deadline = time.time() + cfg.camera_warmup_seconds
    while time.time() < deadline:
        ok, frame = cap.read()
        if ok and frame is not None:
            log(f'Camera {cfg.camera_index} ready ({frame.shape[1]}x{frame.shape[0]})', cfg_level=cfg.log_level)
            return CameraFrameSource(cap, cfg)
        time.sleep(0.05)
    cap.release()
    raise DeviceUnavailableError(f'No frame from camera {cfg.camera_index} within {cfg.camera_warmup_seconds}s')


class ArrayFrameSource:
    """Replays pre-recorded frames; the last one repeats once exhausted."""

    def __init__(self, frames: Iterable[np.ndarray]):
        self._frames: Iterator[np.ndarray] = iter(frames)
        self._last: Optional[np.ndarray] = None
        self.reads = 0

    def current_frame(self) -> np.ndarray:
        self._last = next(self._frames, self._last)
        if self._last is None:
            raise DeviceUnavailableError('No frames available')
        self.reads += 1
        return self._last


class SyntheticFrameSource:
    """Noisy gray frames; a bright hand-sized blob sits over the face while touching.

    ``touching=None`` alternates between the two poses every ``period_frames``.
    """

    def __init__(self, frame_size=(640, 480), *, period_frames: int = 40, seed: int = 0):
        self.w, self.h = frame_size
        self.period_frames = period_frames
        self.touching: Optional[bool] = False
        self._rng = np.random.default_rng(seed)
        self._count = 0
        self.last_frame: Optional[np.ndarray] = None

    def current_frame(self) -> np.ndarray:
        touching = self.touching
        if touching is None:
            touching = (self._count // self.period_frames) % 2 == 1
        self._count += 1
        frame = self._rng.integers(60, 80, size=(self.h, self.w, 3), dtype=np.uint8)
        cx, cy = self.w // 2, self.h // 2
        half = min(self.w, self.h) // 6
        frame[cy - half:cy + half, cx - half // 2:cx + half // 2] = 150
        if touching:
            frame[cy:cy + half, cx - half:cx + half] = 240
        self.last_frame = frame
        return frame
