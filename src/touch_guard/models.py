from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping
import numpy as np


class Label(Enum):
    NOT_TOUCHED = 'NOT_TOUCH'
    TOUCHED = 'TOUCHED'

    @classmethod
    def parse(cls, text: str) -> 'Label':
        key = text.strip().upper().replace('-', '_')
        for label in cls:
            if key in (label.name, label.value):
                return label
        raise ValueError(f'Unknown label {text!r}; expected one of {[l.name for l in cls]}')


@dataclass(frozen=True)
class ClassificationResult:
    label: Label
    confidences: Mapping[Label, float] = field(default_factory=dict)

    def confidence(self, label: Label) -> float:
        return float(self.confidences.get(label, 0.0))

    def as_dict(self) -> Dict[str, object]:
        return {'label': self.label.name, 'confidences': {l.name: self.confidence(l) for l in Label}}


@dataclass(frozen=True)
class Example:
    embedding: np.ndarray
    label: Label
