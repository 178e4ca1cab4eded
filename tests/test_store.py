import numpy as np
import pytest

from touch_guard.errors import ClassificationError, EmptyStoreError
from touch_guard.models import Label
from touch_guard.store import KnnExampleStore

from conftest import CLUSTER_A, CLUSTER_B, cluster


def test_predict_on_empty_store_raises():
    with pytest.raises(EmptyStoreError):
        KnnExampleStore().predict(np.ones(4, dtype=np.float32))


def test_predict_after_single_example():
    store = KnnExampleStore(k=3)
    store.add_example(np.array(CLUSTER_A), Label.NOT_TOUCHED)
    r = store.predict(np.array(CLUSTER_A))
    assert r.label is Label.NOT_TOUCHED
    assert r.confidence(Label.NOT_TOUCHED) == pytest.approx(1.0)
    assert r.confidence(Label.TOUCHED) == 0.0


def test_confidences_are_vote_fractions():
    store = KnnExampleStore(k=3)
    for x in cluster(CLUSTER_A, 10, seed=1):
        store.add_example(x, Label.NOT_TOUCHED)
    for x in cluster(CLUSTER_B, 10, seed=2):
        store.add_example(x, Label.TOUCHED)
    r = store.predict(np.array(CLUSTER_B))
    assert r.label is Label.TOUCHED
    assert sum(r.confidences.values()) == pytest.approx(1.0)
    assert r.confidence(Label.TOUCHED) == pytest.approx(1.0)


def test_dimension_mismatch():
    store = KnnExampleStore()
    store.add_example(np.zeros(4), Label.TOUCHED)
    with pytest.raises(ValueError):
        store.add_example(np.zeros(5), Label.TOUCHED)
    with pytest.raises(ClassificationError):
        store.predict(np.zeros(5))


def test_add_requires_label_enum():
    with pytest.raises(TypeError):
        KnnExampleStore().add_example(np.zeros(4), 'TOUCHED')


def test_examples_keep_insertion_order_and_clear_label():
    store = KnnExampleStore()
    store.add_example(np.array(CLUSTER_A), Label.NOT_TOUCHED)
    store.add_example(np.array(CLUSTER_B), Label.TOUCHED)
    store.add_example(np.array(CLUSTER_A), Label.NOT_TOUCHED)
    assert [e.label for e in store.examples()] == [Label.NOT_TOUCHED, Label.TOUCHED, Label.NOT_TOUCHED]
    assert store.clear_label(Label.NOT_TOUCHED) == 2
    assert store.label_counts() == {Label.NOT_TOUCHED: 0, Label.TOUCHED: 1}
    assert store.predict(np.array(CLUSTER_A)).label is Label.TOUCHED


def test_invalid_k():
    with pytest.raises(ValueError):
        KnnExampleStore(k=0)
