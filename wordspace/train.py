import logging
import threading
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from wordspace.config import TrainingConfig
from wordspace.corpus import encode
from wordspace.errors import ConvergenceWarning, TrainingAborted, VocabularyMismatch
from wordspace.model import ChunkResult, Objective, train_chunk_cbow, train_chunk_skipgram
from wordspace.params import ProgressCounter, SharedParameters
from wordspace.store import VectorStore
from wordspace.tables import NegativeSamplingTable, build_huffman_tree
from wordspace.vocab import Vocabulary, build_vocab

# Training loop: a fixed pool of worker threads, each owning one contiguous
# slice of the corpus per epoch. Learning rate decays linearly with the shared
# count of processed tokens (Mikolov et al.).

logger = logging.getLogger(__name__)


def split_slices(n_tokens: int, n_workers: int, epoch: int = 0) -> List[List[Tuple[int, int]]]:
    """Cut [0, n_tokens) into n_workers contiguous ranges, one per worker.

    From the second epoch on, the cut points are shifted by half a slice per
    epoch, so workers see different boundaries. The slices always cover the
    corpus exactly once. Token order inside a slice is never changed.

    A shifted range that runs past the end of the corpus is returned as two
    segments, (start, n_tokens) and (0, rest), which are trained separately:
    no context window ever joins the last token to the first.

    Args:
        n_tokens: Corpus length in tokens.
        n_workers: Number of slices.
        epoch: Epoch number; 0 gives evenly spaced cuts starting at 0.

    Returns:
        List of n_workers lists of (start, end) segments with
        0 <= start < end <= n_tokens.
    """
    bounds = np.linspace(0, n_tokens, n_workers + 1).astype(np.int64)
    shift = 0
    if n_workers > 1 and n_tokens:
        width = max(1, n_tokens // n_workers)
        shift = (epoch * width // 2) % n_tokens
    slices = []
    for i in range(n_workers):
        start, end = int(bounds[i]) + shift, int(bounds[i + 1]) + shift
        if start >= n_tokens:
            segments = [(start - n_tokens, end - n_tokens)]
        elif end > n_tokens:
            segments = [(start, n_tokens), (0, end - n_tokens)]
        else:
            segments = [(start, end)]
        slices.append([(s, e) for s, e in segments if e > s])
    return slices


class Trainer:
    """Builds the vocabulary and trains embeddings for one configuration.

    Usage:
        trainer = Trainer(TrainingConfig(min_count=1, seed=7, threads=1))
        store = trainer.train(tokens)

    `tokens` must be re-iterable (a list, or a TokenFile): it is read once to
    count and once to encode. A one-shot iterator is materialized first.

    Attributes:
        config (TrainingConfig): Options for this run.
        vocabulary (Optional[Vocabulary]): Frozen after build_vocab().
        history (List[Dict]): One record per finished epoch.
    """

    def __init__(self, config: Optional[TrainingConfig] = None):
        self.config = config or TrainingConfig()
        self.vocabulary: Optional[Vocabulary] = None
        self.history: List[Dict] = []
        self._cancel = threading.Event()
        self._skipped = 0
        self._skipped_lock = threading.Lock()

    def build_vocab(self, tokens: Iterable[str]) -> Vocabulary:
        self.vocabulary = build_vocab(
            tokens, min_count=self.config.min_count, max_size=self.config.max_vocab
        )
        return self.vocabulary

    def cancel(self) -> None:
        """Ask the workers of the running train() to stop; it raises TrainingAborted.

        The flag is cleared when the next train() starts.
        """
        self._cancel.set()

    def learning_rate(self, processed: int, total: int) -> float:
        cfg = self.config
        if total <= 0:
            return cfg.initial_learning_rate
        progress = min(1.0, processed / float(total))
        return max(cfg.min_learning_rate, cfg.initial_learning_rate * (1.0 - progress))

    def train(
        self,
        tokens: Iterable[str],
        vocabulary: Optional[Vocabulary] = None,
        resume_from: Optional[VectorStore] = None,
    ) -> VectorStore:
        """Train on a token stream and return the finished vector store.

        Args:
            tokens: Re-iterable stream of token strings.
            vocabulary: Use this frozen vocabulary instead of counting tokens.
            resume_from: Continue from these vectors; must match the vocabulary.

        Returns:
            VectorStore holding the input matrix.

        Raises:
            EmptyCorpus: If no token reaches min_count.
            VocabularyMismatch: If resume_from does not fit the vocabulary.
            TrainingAborted: If cancel() was called during this run.
        """
        cfg = self.config
        if iter(tokens) is tokens:
            tokens = list(tokens)
        if vocabulary is not None:
            self.vocabulary = vocabulary
        elif self.vocabulary is None:
            self.build_vocab(tokens)
        vocab = self.vocabulary

        initial = None
        if resume_from is not None:
            self._check_resume(resume_from, vocab)
            initial = resume_from.vectors

        rng = np.random.default_rng(cfg.seed)
        params = SharedParameters(
            len(vocab),
            cfg.embedding_dimension,
            hierarchical_softmax=cfg.use_hierarchical_softmax,
            negative_sampling=cfg.negative_samples > 0,
            rng=rng,
            initial=initial,
        )
        objective = Objective(
            params,
            tree=build_huffman_tree(vocab) if cfg.use_hierarchical_softmax else None,
            table=NegativeSamplingTable(vocab) if cfg.negative_samples > 0 else None,
            negative=cfg.negative_samples,
            compute_loss=cfg.compute_loss,
        )
        keep_prob = vocab.keep_probabilities(cfg.subsample_threshold)
        ids = encode(tokens, vocab)
        total_words = len(ids) * cfg.epochs
        counter = ProgressCounter()
        self.history = []
        self._skipped = 0
        self._cancel.clear()

        logger.info(
            "training %s on %d tokens, vocabulary %d, dim %d, %d epochs, %d threads",
            cfg.architecture, len(ids), len(vocab), cfg.embedding_dimension,
            cfg.epochs, cfg.threads,
        )
        with ThreadPoolExecutor(max_workers=cfg.threads, thread_name_prefix="wordspace") as pool:
            for epoch in range(cfg.epochs):
                start_time = time.time()
                start_words = counter.value
                slices = split_slices(len(ids), cfg.threads, epoch)
                futures = [
                    pool.submit(
                        self._worker, objective, [ids[s:e] for s, e in segments], keep_prob,
                        counter, total_words, self._worker_rng(epoch, w),
                    )
                    for w, segments in enumerate(slices)
                ]
                # result() re-raises worker exceptions here
                results = [f.result() for f in futures]
                if self._cancel.is_set():
                    raise TrainingAborted(f"training cancelled during epoch {epoch + 1}")
                elapsed = max(time.time() - start_time, 1e-9)
                words = counter.value - start_words
                record = {
                    "epoch": epoch + 1,
                    "words": words,
                    "lr": self.learning_rate(counter.value, total_words),
                    "loss": float(sum(r.loss for r in results)),
                    "seconds": elapsed,
                }
                self.history.append(record)
                logger.info(
                    "epoch %d/%d: %d tokens, %.0f tokens/s, lr %.6f",
                    epoch + 1, cfg.epochs, words, words / elapsed, record["lr"],
                )

        reset = params.repair()
        if self._skipped or len(reset):
            msg = (
                f"non-finite values during training: {self._skipped} updates skipped, "
                f"{len(reset)} rows reset to zero"
            )
            logger.warning(msg)
            warnings.warn(msg, ConvergenceWarning, stacklevel=2)
        return VectorStore(vocab.words, params.freeze(), vocabulary=vocab)

    def _worker_rng(self, epoch: int, worker: int) -> np.random.Generator:
        if self.config.seed is None:
            return np.random.default_rng()
        return np.random.default_rng([self.config.seed, epoch, worker])

    def _worker(
        self,
        objective: Objective,
        segments: List[np.ndarray],
        keep_prob: np.ndarray,
        counter: ProgressCounter,
        total_words: int,
        rng: np.random.Generator,
    ) -> ChunkResult:
        cfg = self.config
        words = 0
        loss = 0.0
        skipped = 0
        # chunks never span two segments
        chunks = (
            ids[start:start + cfg.chunk_size]
            for ids in segments
            for start in range(0, len(ids), cfg.chunk_size)
        )
        for chunk in chunks:
            if self._cancel.is_set():
                break
            alpha = self.learning_rate(counter.value, total_words)
            if cfg.architecture == "cbow":
                res = train_chunk_cbow(
                    objective, chunk, keep_prob, cfg.window, alpha, rng, cfg.cbow_mean
                )
            else:
                res = train_chunk_skipgram(objective, chunk, keep_prob, cfg.window, alpha, rng)
            counter.add(res.words)
            words += res.words
            loss += res.loss
            skipped += res.skipped
            if res.skipped:
                logger.debug("dropped %d non-finite updates at lr %.6f", res.skipped, alpha)
        if skipped:
            with self._skipped_lock:
                self._skipped += skipped
        return ChunkResult(words, loss, skipped)

    def _check_resume(self, store: VectorStore, vocab: Vocabulary) -> None:
        if len(store) != len(vocab):
            raise VocabularyMismatch(
                f"stored model has {len(store)} tokens, current vocabulary has {len(vocab)}"
            )
        if store.dim != self.config.embedding_dimension:
            raise VocabularyMismatch(
                f"stored model has dimension {store.dim}, "
                f"config asks for {self.config.embedding_dimension}"
            )
        if store.words != vocab.words:
            first = next(i for i, (a, b) in enumerate(zip(store.words, vocab.words)) if a != b)
            raise VocabularyMismatch(
                f"token order differs at id {first}: "
                f"{store.words[first]!r} stored vs {vocab.words[first]!r} current"
            )


def train(tokens: Iterable[str], config: Optional[TrainingConfig] = None, **overrides) -> VectorStore:
    """Train with a fresh Trainer; keyword overrides replace config fields."""
    if config is None:
        config = TrainingConfig(**overrides)
    elif overrides:
        config = TrainingConfig(**{**config.to_dict(), **overrides})
    return Trainer(config).train(tokens)
