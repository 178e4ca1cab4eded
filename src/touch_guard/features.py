from __future__ import annotations
from typing import Protocol
import numpy as np

try:
    import cv2  # type: ignore
except ImportError:  # pragma: no cover
    cv2 = None

from .errors import ExtractionError


class FeatureExtractor(Protocol):
    def embed(self, frame: np.ndarray) -> np.ndarray: ...


class GrayThumbnailExtractor:
    """Frame -> zero-mean, unit-length grayscale thumbnail of ``size`` x ``size``."""

    def __init__(self, size: int = 32):
        if size < 2:
            raise ValueError('size must be >= 2')
        self.size = size

    @property
    def dim(self) -> int:
        return self.size * self.size

    def embed(self, frame: np.ndarray) -> np.ndarray:
        if frame is None or getattr(frame, 'ndim', 0) not in (2, 3) or frame.size == 0:
            raise ExtractionError(f'Unusable frame: {None if frame is None else frame.shape}')
        try:
            if frame.ndim == 3:
                if cv2 is not None:
                    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
                else:
                    gray = (0.114 * frame[:, :, 0] + 0.587 * frame[:, :, 1] + 0.299 * frame[:, :, 2])
            else:
                gray = frame
            if cv2 is not None:
                thumb = cv2.resize(gray.astype(np.float32), (self.size, self.size), interpolation=cv2.INTER_AREA)
            else:
                ys = np.linspace(0, gray.shape[0] - 1, self.size).astype(int)
                xs = np.linspace(0, gray.shape[1] - 1, self.size).astype(int)
                thumb = gray[np.ix_(ys, xs)].astype(np.float32)
        except Exception as e:
            raise ExtractionError(f'Embedding failed: {e}') from e
        vec = thumb.reshape(-1).astype(np.float32)
        vec -= vec.mean()
        norm = float(np.linalg.norm(vec))
        if norm > 1e-9:
            vec /= norm
        return vec
