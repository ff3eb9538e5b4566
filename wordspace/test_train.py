import importlib
import threading

import numpy as np
import pytest

from wordspace.config import TrainingConfig
from wordspace.errors import ConvergenceWarning, EmptyCorpus, TrainingAborted, VocabularyMismatch
from wordspace.query import QueryEngine
from wordspace.store import VectorStore
from wordspace.train import Trainer, split_slices, train

# wordspace/__init__ rebinds the attribute "train" to the function, so fetch the module itself.
train_module = importlib.import_module("wordspace.train")


def small_config(**kw):
    base = dict(embedding_dimension=16, window=3, min_count=1, negative_samples=5,
                epochs=2, threads=1, subsample_threshold=0.0, seed=42)
    base.update(kw)
    return TrainingConfig(**base)


def test_config_validation():
    with pytest.raises(ValueError, match="negative_samples"):
        TrainingConfig(negative_samples=0, use_hierarchical_softmax=False)
    with pytest.raises(ValueError, match="threads"):
        TrainingConfig(threads=0)
    with pytest.raises(ValueError, match="architecture"):
        TrainingConfig(architecture="glove")
    TrainingConfig(negative_samples=0, use_hierarchical_softmax=True)


def test_split_slices_cover_corpus_once():
    ids = np.arange(103)
    for epoch in range(4):
        slices = split_slices(len(ids), 4, epoch)
        assert len(slices) == 4
        parts = [ids[s:e] for segments in slices for s, e in segments]
        np.testing.assert_array_equal(np.sort(np.concatenate(parts)), ids)
    assert split_slices(103, 4, 0) != split_slices(103, 4, 1)


def test_shifted_slices_never_join_end_to_start():
    n = 100
    slices = split_slices(n, 4, epoch=1)
    for segments in slices:
        for s, e in segments:
            assert 0 <= s < e <= n
    # the last worker's range runs past the end and comes back as two segments
    assert slices[-1] == [(87, 100), (0, 12)]


def test_worker_chunks_stay_inside_segments(monkeypatch):
    seen = []
    real = train_module.train_chunk_skipgram

    def recording(objective, ids, *args, **kwargs):
        seen.append(ids.copy())
        return real(objective, ids, *args, **kwargs)

    monkeypatch.setattr(train_module, "train_chunk_skipgram", recording)
    # tokens are their own positions, so a chunk is contiguous iff its ids step by 1
    tokens = [f"t{i:03d}" for i in range(120)]
    trainer = Trainer(small_config(threads=4, epochs=3, chunk_size=1000))
    trainer.train(tokens)
    order = {w: i for i, w in enumerate(tokens)}
    lookup = np.array([order[w] for w in trainer.vocabulary.words])
    for chunk in seen:
        assert np.all(np.diff(lookup[chunk]) == 1)
    assert sum(len(c) for c in seen) == 3 * len(tokens)


def test_learning_rate_decays_to_floor():
    trainer = Trainer(small_config(initial_learning_rate=0.02))
    assert trainer.learning_rate(0, 100) == pytest.approx(0.02)
    assert trainer.learning_rate(50, 100) == pytest.approx(0.01)
    assert trainer.learning_rate(100, 100) == pytest.approx(0.02 * 1e-4)
    assert trainer.learning_rate(500, 100) == pytest.approx(0.02 * 1e-4)


def test_trained_vectors_have_dimension_and_are_finite(two_topic_corpus):
    store = train(two_topic_corpus(), small_config())
    assert isinstance(store, VectorStore)
    assert store.vectors.shape == (10, 16)
    assert np.all(np.isfinite(store.vectors))
    assert store.vocabulary is not None and store.words == store.vocabulary.words


def test_single_thread_seeded_runs_are_identical(two_topic_corpus):
    tokens = two_topic_corpus()
    s1 = train(tokens, small_config())
    s2 = train(tokens, small_config())
    assert s1.words == s2.words
    np.testing.assert_array_equal(s1.vectors, s2.vectors)


def test_different_seeds_differ(two_topic_corpus):
    tokens = two_topic_corpus()
    s1 = train(tokens, small_config(seed=1))
    s2 = train(tokens, small_config(seed=2))
    assert not np.array_equal(s1.vectors, s2.vectors)


@pytest.mark.parametrize("overrides", [
    {},
    {"use_hierarchical_softmax": True, "negative_samples": 0},
    {"architecture": "cbow"},
    {"architecture": "cbow", "use_hierarchical_softmax": True, "cbow_mean": False},
])
def test_topics_separate(overrides, two_topic_corpus, topic_groups):
    """Tokens sharing contexts end up closer than tokens that never co-occur."""
    store = train(two_topic_corpus(), small_config(epochs=5, **overrides))
    sims = QueryEngine(store).similarity_matrix(topic_groups[0] + topic_groups[1])
    within = np.concatenate([sims[:5, :5][~np.eye(5, dtype=bool)], sims[5:, 5:][~np.eye(5, dtype=bool)]])
    across = sims[:5, 5:].ravel()
    assert within.mean() > across.mean()


def test_multithreaded_training(two_topic_corpus):
    tokens = two_topic_corpus()
    trainer = Trainer(small_config(threads=3, epochs=3))
    store = trainer.train(tokens)
    assert np.all(np.isfinite(store.vectors))
    assert [r["epoch"] for r in trainer.history] == [1, 2, 3]
    assert all(r["words"] == len(tokens) for r in trainer.history)


def test_history_tracks_loss_when_requested(two_topic_corpus):
    trainer = Trainer(small_config(compute_loss=True))
    trainer.train(two_topic_corpus())
    assert all(r["loss"] > 0 for r in trainer.history)
    assert trainer.history[-1]["lr"] < trainer.config.initial_learning_rate


def test_generator_input_is_materialized(two_topic_corpus):
    tokens = two_topic_corpus()
    store = train(iter(tokens), small_config())
    assert len(store) == 10


def test_empty_corpus_aborts():
    with pytest.raises(EmptyCorpus):
        train(["a", "b", "c"], small_config(min_count=2))


def test_cancel_during_epoch_then_train_again(monkeypatch, two_topic_corpus):
    tokens = two_topic_corpus()
    trainer = Trainer(small_config(threads=2, chunk_size=100))
    started = threading.Event()
    cancelled = threading.Event()
    real = train_module.train_chunk_skipgram

    def gated(*args, **kwargs):
        # hold the workers inside the first epoch until cancel() has been called
        started.set()
        cancelled.wait(10)
        return real(*args, **kwargs)

    def stop():
        started.wait(10)
        trainer.cancel()
        cancelled.set()

    monkeypatch.setattr(train_module, "train_chunk_skipgram", gated)
    canceller = threading.Thread(target=stop)
    canceller.start()
    with pytest.raises(TrainingAborted, match="epoch 1"):
        trainer.train(tokens)
    canceller.join()
    assert trainer.history == []

    store = trainer.train(tokens)
    assert np.all(np.isfinite(store.vectors))
    assert [r["epoch"] for r in trainer.history] == [1, 2]


def test_non_finite_updates_warn_and_keep_matrix_finite(two_topic_corpus):
    with pytest.warns(ConvergenceWarning):
        store = train(two_topic_corpus(n_blocks=4), small_config(initial_learning_rate=np.inf))
    assert np.all(np.isfinite(store.vectors))


def test_resume_from_matching_store(two_topic_corpus):
    tokens = two_topic_corpus()
    first = train(tokens, small_config(epochs=1))
    trainer = Trainer(small_config(epochs=1))
    resumed = trainer.train(tokens, resume_from=first)
    assert resumed.words == first.words
    assert not np.array_equal(resumed.vectors, first.vectors)


def test_resume_rejects_other_vocabulary_size(two_topic_corpus):
    tokens = two_topic_corpus()
    other = VectorStore(["x", "y"], np.ones((2, 16)))
    with pytest.raises(VocabularyMismatch, match="2 tokens"):
        Trainer(small_config()).train(tokens, resume_from=other)


def test_resume_rejects_other_dimension_and_order(two_topic_corpus):
    tokens = two_topic_corpus()
    first = train(tokens, small_config(epochs=1))
    with pytest.raises(VocabularyMismatch, match="dimension"):
        Trainer(small_config(embedding_dimension=8)).train(tokens, resume_from=first)
    shuffled = VectorStore(first.words[::-1], first.vectors[::-1])
    with pytest.raises(VocabularyMismatch, match="order"):
        Trainer(small_config()).train(tokens, resume_from=shuffled)
