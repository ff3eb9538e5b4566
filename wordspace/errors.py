# Error taxonomy for vocabulary building, training and querying.


class WordspaceError(Exception):
    """Base class for every error raised by this package."""


class EmptyCorpus(WordspaceError, ValueError):
    """No token survived the minimum-count threshold."""

    def __init__(self, min_count: int, total_tokens: int):
        self.min_count = min_count
        self.total_tokens = total_tokens
        super().__init__(
            f"no token occurs at least min_count={min_count} times "
            f"(corpus had {total_tokens} tokens)"
        )


class UnknownToken(WordspaceError, KeyError):
    """A query referenced a token that is not in the vector store."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(token)

    def __str__(self) -> str:
        return f"token {self.token!r} not in vocabulary"


class ZeroVector(WordspaceError, ValueError):
    """Cosine similarity is undefined for a vector with zero norm."""

    def __init__(self, what: str = "vector"):
        self.what = what
        super().__init__(f"{what} has zero norm; cosine similarity is undefined")


class VocabularyMismatch(WordspaceError, ValueError):
    """A stored model is incompatible with the vocabulary it should continue from."""


class TrainingAborted(WordspaceError, RuntimeError):
    """Training was cancelled; no partial model is produced."""


class ConvergenceWarning(RuntimeWarning):
    """Non-finite values appeared during training and were skipped or reset."""
