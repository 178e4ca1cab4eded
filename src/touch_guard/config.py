from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple
try:
    import yaml  # type: ignore
except ImportError:  # pragma: no cover
    yaml = None  # type: ignore

LOG_LEVELS = ('debug', 'info', 'warn', 'error')


@dataclass
class GuardConfig:
    camera_index: int = 0
    frame_size: Tuple[int, int] = (640, 480)
    camera_warmup_seconds: float = 5.0
    embedding_size: int = 32
    knn_k: int = 3
    training_examples: int = 50
    training_delay_ms: int = 100
    inference_delay_ms: int = 200
    touched_confidence: float = 0.8
    notify_cooldown_ms: int = 3000
    alert_title: str = "Don't touch your face"
    alert_body: str = 'You just touched your face!!!'
    sound_path: Optional[str] = None
    bell_seconds: float = 1.5
    cue_timeout_seconds: float = 30.0
    max_capture_failures: int = 25
    preview: bool = False
    log_level: str = 'info'


def load_config(path: str) -> GuardConfig:
    if yaml is None:
        raise RuntimeError("Missing dependency 'pyyaml'. Install with: pip install pyyaml")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    d = GuardConfig()
    cfg = GuardConfig(
        camera_index=int(data.get('camera_index', d.camera_index)),
        frame_size=tuple(data.get('frame_size', list(d.frame_size))),
        camera_warmup_seconds=float(data.get('camera_warmup_seconds', d.camera_warmup_seconds)),
        embedding_size=int(data.get('embedding_size', d.embedding_size)),
        knn_k=int(data.get('knn_k', d.knn_k)),
        training_examples=int(data.get('training_examples', d.training_examples)),
        training_delay_ms=int(data.get('training_delay_ms', d.training_delay_ms)),
        inference_delay_ms=int(data.get('inference_delay_ms', d.inference_delay_ms)),
        touched_confidence=float(data.get('touched_confidence', d.touched_confidence)),
        notify_cooldown_ms=int(data.get('notify_cooldown_ms', d.notify_cooldown_ms)),
        alert_title=str(data.get('alert_title', d.alert_title)),
        alert_body=str(data.get('alert_body', d.alert_body)),
        sound_path=data.get('sound_path', d.sound_path),
        bell_seconds=float(data.get('bell_seconds', d.bell_seconds)),
        cue_timeout_seconds=float(data.get('cue_timeout_seconds', d.cue_timeout_seconds)),
        max_capture_failures=int(data.get('max_capture_failures', d.max_capture_failures)),
        preview=bool(data.get('preview', d.preview)),
        log_level=str(data.get('log_level', d.log_level)),
    )
    if cfg.log_level not in LOG_LEVELS:
        raise ValueError(f'log_level must be one of {LOG_LEVELS}, got {cfg.log_level!r}')
    if not 0.0 <= cfg.touched_confidence < 1.0:
        raise ValueError('touched_confidence must be in [0, 1)')
    if cfg.knn_k < 1:
        raise ValueError('knn_k must be >= 1')
    if cfg.bell_seconds < 0 or cfg.cue_timeout_seconds <= 0:
        raise ValueError('bell_seconds must be >= 0 and cue_timeout_seconds > 0')
    if cfg.max_capture_failures < 0:
        raise ValueError('max_capture_failures must be >= 0')
    return cfg

