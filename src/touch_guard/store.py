"""Incremental k-nearest-neighbour example store.

Examples are append-only. The scikit-learn classifier is refit lazily on the
first prediction after new examples arrive, with cosine distance and
``k = min(knn_k, n_examples)`` so that confidences are the fraction of the
nearest neighbours voting for each label.
"""
from __future__ import annotations
from typing import Dict, List, Optional, Protocol
import numpy as np
from sklearn.neighbors import KNeighborsClassifier

from .errors import ClassificationError, EmptyStoreError
from .models import ClassificationResult, Example, Label


class ExampleStore(Protocol):
    def add_example(self, embedding: np.ndarray, label: Label) -> None: ...
    def predict(self, embedding: np.ndarray) -> ClassificationResult: ...


class KnnExampleStore:
    def __init__(self, k: int = 3):
        if k < 1:
            raise ValueError('k must be >= 1')
        self.k = k
        self._X: List[np.ndarray] = []
        self._y: List[Label] = []
        self._clf: Optional[KNeighborsClassifier] = None
        self.dim: Optional[int] = None

    def add_example(self, embedding: np.ndarray, label: Label) -> None:
        if not isinstance(label, Label):
            raise TypeError(f'label must be a Label, got {label!r}')
        vec = np.asarray(embedding, dtype=np.float32).reshape(-1)
        if self.dim is None:
            self.dim = vec.shape[0]
        elif vec.shape[0] != self.dim:
            raise ValueError(f'Embedding dimension {vec.shape[0]} does not match store dimension {self.dim}')
        self._X.append(vec)
        self._y.append(label)
        self._clf = None

    def _fit(self) -> KNeighborsClassifier:
        clf = KNeighborsClassifier(n_neighbors=min(self.k, len(self._y)), metric='cosine', algorithm='brute')
        clf.fit(np.stack(self._X), np.array([l.name for l in self._y]))
        return clf

    def predict(self, embedding: np.ndarray) -> ClassificationResult:
        if not self._y:
            raise EmptyStoreError('No examples yet; train both labels before starting inference')
        vec = np.asarray(embedding, dtype=np.float32).reshape(1, -1)
        if vec.shape[1] != self.dim:
            raise ClassificationError(f'Query dimension {vec.shape[1]} does not match store dimension {self.dim}')
        try:
            if self._clf is None:
                self._clf = self._fit()
            proba = self._clf.predict_proba(vec)[0]
        except Exception as e:
            raise ClassificationError(f'kNN prediction failed: {e}') from e
        by_name = dict(zip(self._clf.classes_, proba))
        confidences = {l: float(by_name.get(l.name, 0.0)) for l in Label}
        best = max(Label, key=lambda l: confidences[l])
        return ClassificationResult(best, confidences)

    # ---------- bookkeeping ----------
    def num_examples(self) -> int:
        return len(self._y)

    def label_counts(self) -> Dict[Label, int]:
        return {l: self._y.count(l) for l in Label}

    def examples(self) -> List[Example]:
        return [Example(x, l) for x, l in zip(self._X, self._y)]

    def clear_label(self, label: Label) -> int:
        """Drop every example of ``label``; returns how many were removed."""
        keep = [(x, l) for x, l in zip(self._X, self._y) if l is not label]
        removed = len(self._y) - len(keep)
        self._X = [x for x, _ in keep]
        self._y = [l for _, l in keep]
        self._clf = None
        if not self._y:
            self.dim = None
        return removed
