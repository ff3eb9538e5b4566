import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional

# Training options. Defaults follow the C word2vec tool where it has one.

ARCHITECTURES = ("skipgram", "cbow")


def _default_threads() -> int:
    return max(1, min(4, os.cpu_count() or 1))


@dataclass
class TrainingConfig:
    """Configuration for vocabulary building and the training engine.

    Attributes:
        embedding_dimension: Length D of every trained vector.
        window: Maximum context half-width; the effective width per position
            is drawn uniformly from [1, window].
        min_count: Tokens seen fewer times are discarded before id assignment.
        negative_samples: Negatives drawn per positive pair (0 disables).
        use_hierarchical_softmax: Train a Huffman-tree output layer.
        epochs: Passes over the corpus.
        initial_learning_rate: Starting step size; decays linearly.
        threads: Worker threads, each owning a disjoint slice per epoch.
        subsample_threshold: Frequent-token down-sampling threshold (0 disables).
        seed: Seeds every random draw; with threads=1 runs are reproducible.

        architecture: "skipgram" or "cbow".
        cbow_mean: Average (True) or sum (False) the CBOW context rows.
        max_vocab: Keep at most this many tokens after thresholding.
        min_learning_rate_ratio: Learning-rate floor as a fraction of the start.
        chunk_size: Tokens per read-ahead chunk; windows never cross chunks.
        compute_loss: Track the running objective value in the history.
    """
    embedding_dimension: int = 100
    window: int = 5
    min_count: int = 5
    negative_samples: int = 5
    use_hierarchical_softmax: bool = False
    epochs: int = 5
    initial_learning_rate: float = 0.025
    threads: int = field(default_factory=_default_threads)
    subsample_threshold: float = 1e-3
    seed: Optional[int] = None

    architecture: str = "skipgram"
    cbow_mean: bool = True
    max_vocab: Optional[int] = None
    min_learning_rate_ratio: float = 1e-4
    chunk_size: int = 1000
    compute_loss: bool = False

    def __post_init__(self) -> None:
        positive_ints = ("embedding_dimension", "window", "epochs", "threads", "chunk_size")
        for name in positive_ints:
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.min_count < 1:
            raise ValueError(f"min_count must be >= 1, got {self.min_count}")
        if self.negative_samples < 0:
            raise ValueError(f"negative_samples must be >= 0, got {self.negative_samples}")
        if self.negative_samples == 0 and not self.use_hierarchical_softmax:
            raise ValueError(
                "either negative_samples > 0 or use_hierarchical_softmax=True is required"
            )
        if self.initial_learning_rate <= 0:
            raise ValueError(
                f"initial_learning_rate must be > 0, got {self.initial_learning_rate}"
            )
        if not 0 < self.min_learning_rate_ratio <= 1:
            raise ValueError(
                f"min_learning_rate_ratio must be in (0, 1], got {self.min_learning_rate_ratio}"
            )
        if self.subsample_threshold < 0:
            raise ValueError(
                f"subsample_threshold must be >= 0, got {self.subsample_threshold}"
            )
        if self.architecture not in ARCHITECTURES:
            raise ValueError(
                f"architecture must be one of {ARCHITECTURES}, got {self.architecture!r}"
            )
        if self.max_vocab is not None and self.max_vocab < 1:
            raise ValueError(f"max_vocab must be >= 1 when set, got {self.max_vocab}")

    @property
    def min_learning_rate(self) -> float:
        return self.initial_learning_rate * self.min_learning_rate_ratio

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_namespace(cls, args: Any) -> "TrainingConfig":
        """Build a config from an argparse namespace, ignoring unrelated attributes."""
        values = vars(args)
        kwargs = {f.name: values[f.name] for f in fields(cls) if values.get(f.name) is not None}
        return cls(**kwargs)
