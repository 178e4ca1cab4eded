from .config import GuardConfig, load_config
from .errors import (TouchGuardError, DeviceUnavailableError, ExtractionError, ClassificationError,
                     EmptyStoreError, ModeConflictError)
from .models import Label, ClassificationResult, Example
from .camera import open_camera, ArrayFrameSource, SyntheticFrameSource
from .features import GrayThumbnailExtractor
from .store import KnnExampleStore
from .alerts import AlertGate, AlertState, Notifier, SoundCue
from .controller import TrainingController, InferenceLoop, is_touched, sleep_ms
from .session import Session, open_session

__all__ = [
    'GuardConfig', 'load_config', 'TouchGuardError', 'DeviceUnavailableError', 'ExtractionError',
    'ClassificationError', 'EmptyStoreError', 'ModeConflictError', 'Label', 'ClassificationResult', 'Example',
    'open_camera', 'ArrayFrameSource', 'SyntheticFrameSource', 'GrayThumbnailExtractor', 'KnnExampleStore',
    'AlertGate', 'AlertState', 'Notifier', 'SoundCue', 'TrainingController', 'InferenceLoop', 'is_touched',
    'sleep_ms', 'Session', 'open_session',
]
