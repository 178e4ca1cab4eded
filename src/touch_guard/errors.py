"""Error taxonomy for the training / inference loop."""


class TouchGuardError(Exception):
    pass


class DeviceUnavailableError(TouchGuardError):
    """No camera, no permission, or no first frame. Fatal at startup."""


class ExtractionError(TouchGuardError):
    """Feature extractor failed on a frame."""


class ClassificationError(TouchGuardError):
    """Example store failed to classify an embedding."""


class EmptyStoreError(ClassificationError):
    """Prediction requested before any example was added."""


class ModeConflictError(TouchGuardError):
    """Training and inference were requested at the same time."""
