import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from wordspace.errors import UnknownToken
from wordspace.vocab import Vocabulary

# Trained token vectors and their word2vec layouts. Both start with a "V D"
# header line. Binary: V records of token, space, D little-endian float32
# values, newline. Text: one line per token with D values printed to 9
# significant digits, so float32 vectors read back exactly.

logger = logging.getLogger(__name__)

REAL = np.dtype("<f4")


class VectorStore:
    """Read-only mapping from token to a fixed-length vector.

    Attributes:
        words (List[str]): Tokens ordered by id.
        vectors (np.ndarray): (V, D) float32 matrix, not writeable.
        vocabulary (Optional[Vocabulary]): Present when the store came from training.
    """

    def __init__(
        self,
        words: Sequence[str],
        vectors: np.ndarray,
        vocabulary: Optional[Vocabulary] = None,
    ):
        vectors = np.array(vectors, dtype=np.float32, copy=True)
        if vectors.ndim != 2 or vectors.shape[0] != len(words):
            raise ValueError(
                f"expected a ({len(words)}, D) matrix, got shape {vectors.shape}"
            )
        self.words = list(words)
        self._index: Dict[str, int] = {w: i for i, w in enumerate(self.words)}
        if len(self._index) != len(self.words):
            raise ValueError("duplicate tokens in vector store")
        vectors.setflags(write=False)
        self.vectors = vectors
        self.vocabulary = vocabulary

    def __len__(self) -> int:
        return len(self.words)

    def __contains__(self, token: str) -> bool:
        return token in self._index

    def __getitem__(self, token: str) -> np.ndarray:
        return self.vectors[self.index_of(token)]

    @property
    def dim(self) -> int:
        return self.vectors.shape[1]

    def index_of(self, token: str) -> int:
        try:
            return self._index[token]
        except KeyError:
            raise UnknownToken(token) from None

    def indices(self, tokens: Iterable[str]) -> np.ndarray:
        return np.array([self.index_of(t) for t in tokens], dtype=np.int64)

    def subset(
        self,
        tokens: Optional[Iterable[str]] = None,
        dims: Optional[Sequence[int]] = None,
    ) -> "VectorStore":
        """New store restricted to some rows (tokens, in the given order) and/or columns."""
        if tokens is None:
            rows = np.arange(len(self))
        else:
            rows = self.indices(tokens)
        matrix = self.vectors[rows]
        if dims is not None:
            matrix = matrix[:, np.asarray(dims, dtype=np.int64)]
        return VectorStore([self.words[i] for i in rows], matrix)

    def save(self, path: str, binary: bool = True) -> None:
        """Write the store in binary (default) or text layout."""
        V, D = self.vectors.shape
        with open(path, "wb") as f:
            f.write(f"{V} {D}\n".encode("utf-8"))
            for word, row in zip(self.words, self.vectors):
                if binary:
                    f.write(word.encode("utf-8") + b" " + row.astype(REAL).tobytes() + b"\n")
                else:
                    values = " ".join("%.9g" % x for x in row)
                    f.write(f"{word} {values}\n".encode("utf-8"))
        logger.info("saved %d x %d vectors to %s (%s)", V, D, path, "binary" if binary else "text")

    @classmethod
    def load(cls, path: str, binary: bool = True) -> "VectorStore":
        """Read a store written by save() (or by the C word2vec tool)."""
        with open(path, "rb") as f:
            header = f.readline().decode("utf-8")
            try:
                V, D = (int(x) for x in header.split())
            except ValueError:
                raise ValueError(f"invalid header in {path}: {header.strip()!r}") from None
            words: List[str] = []
            vectors = np.empty((V, D), dtype=np.float32)
            if binary:
                nbytes = REAL.itemsize * D
                for i in range(V):
                    word = _read_word(f, path, i)
                    data = f.read(nbytes)
                    if len(data) != nbytes:
                        raise ValueError(f"truncated vector for record {i} in {path}")
                    words.append(word)
                    vectors[i] = np.frombuffer(data, dtype=REAL)
            else:
                for i in range(V):
                    line = f.readline()
                    parts = line.decode("utf-8").rstrip("\n").rstrip(" ").split(" ")
                    if len(parts) != D + 1:
                        raise ValueError(
                            f"invalid vector on line {i + 2} of {path} "
                            f"(expected {D + 1} fields, got {len(parts)})"
                        )
                    words.append(parts[0])
                    vectors[i] = np.array(parts[1:], dtype=np.float32)
        logger.info("loaded %d x %d vectors from %s", V, D, path)
        return cls(words, vectors)


def _read_word(f, path: str, record: int) -> str:
    chars = []
    while True:
        ch = f.read(1)
        if not ch:
            raise ValueError(f"unexpected end of file in record {record} of {path}")
        if ch == b" ":
            break
        if ch != b"\n":  # newline after the previous vector
            chars.append(ch)
    return b"".join(chars).decode("utf-8")


def as_matrix(source: Union[VectorStore, np.ndarray]) -> np.ndarray:
    """The (N, D) matrix behind a store, or the array itself."""
    if isinstance(source, VectorStore):
        return source.vectors
    matrix = np.asarray(source)
    if matrix.ndim != 2:
        raise ValueError(f"expected a 2-D matrix, got shape {matrix.shape}")
    return matrix
