import heapq
import logging
from typing import List, Optional

import numpy as np

from wordspace.vocab import Vocabulary

# Output-layer tables built from vocabulary frequencies: a Huffman tree for
# hierarchical softmax, and a unigram^0.75 lookup table for negative sampling.

logger = logging.getLogger(__name__)

NEGATIVE_POWER = 0.75
MAX_TABLE_SIZE = 10_000_000
MIN_TABLE_SIZE = 100_000


class HuffmanTree:
    """Binary Huffman tree over the vocabulary.

    Leaves are token ids 0..V-1; internal nodes are numbered V..2V-2 in merge
    order and exposed through `points` shifted down by V, so they index rows
    of the (V-1, D) hierarchical-softmax output matrix directly.

    Attributes:
        codes (List[np.ndarray]): Per token, uint8 bits from root to leaf.
        points (List[np.ndarray]): Per token, int32 internal-node rows on the
            same path, root first.
        max_depth (int): Longest code length.
    """

    def __init__(self, codes: List[np.ndarray], points: List[np.ndarray]):
        self.codes = codes
        self.points = points
        self.max_depth = max((len(c) for c in codes), default=0)

    @property
    def inner_nodes(self) -> int:
        return max(len(self.codes) - 1, 0)

    def code_of(self, index: int) -> np.ndarray:
        return self.codes[index]

    def path_of(self, index: int) -> np.ndarray:
        return self.points[index]


def build_huffman_tree(vocabulary: Vocabulary) -> HuffmanTree:
    """Merge the two least frequent active nodes until one root remains.

    The first node popped in each merge gets bit 0, the second bit 1. Equal
    counts are ordered by node number, so the tree only depends on the
    vocabulary's frequency order.

    Args:
        vocabulary: Frozen vocabulary.

    Returns:
        HuffmanTree with a code and path per token.
    """
    V = len(vocabulary)
    counts = vocabulary.counts
    heap = [(int(counts[i]), i) for i in range(V)]
    heapq.heapify(heap)
    left = np.zeros(max(V - 1, 0), dtype=np.int64)
    right = np.zeros(max(V - 1, 0), dtype=np.int64)
    for i in range(V - 1):
        c1, n1 = heapq.heappop(heap)
        c2, n2 = heapq.heappop(heap)
        left[i], right[i] = n1, n2
        heapq.heappush(heap, (c1 + c2, V + i))

    codes: List[Optional[np.ndarray]] = [None] * V
    points: List[Optional[np.ndarray]] = [None] * V
    if V == 1:
        codes[0] = np.zeros(0, dtype=np.uint8)
        points[0] = np.zeros(0, dtype=np.int32)
    elif V > 1:
        stack = [(2 * V - 2, [], [])]
        while stack:
            node, code, point = stack.pop()
            if node < V:
                codes[node] = np.array(code, dtype=np.uint8)
                points[node] = np.array(point, dtype=np.int32)
                continue
            inner = node - V
            stack.append((int(left[inner]), code + [0], point + [inner]))
            stack.append((int(right[inner]), code + [1], point + [inner]))

    tree = HuffmanTree(codes, points)
    logger.info("built huffman tree over %d tokens with maximum depth %d", V, tree.max_depth)
    return tree


def negative_sampling_distribution(counts: np.ndarray, power: float = NEGATIVE_POWER) -> np.ndarray:
    """Unigram distribution raised to power and normalized (Mikolov et al.: power=0.75).

    Args:
        counts: 1D array of vocabulary counts.
        power: Exponent for counts; 0.75 is standard. Defaults to 0.75.

    Returns:
        1D array of probabilities (sum 1), same length as counts.
    """
    probs = np.power(np.maximum(np.asarray(counts, dtype=np.float64), 1e-10), power)
    probs /= probs.sum()
    return probs


class NegativeSamplingTable:
    """Flat lookup table: token i fills a share of slots equal to its probability.

    Drawing a negative is one uniform slot index and one array read. The
    table is built once per vocabulary.
    """

    def __init__(self, vocabulary: Vocabulary, power: float = NEGATIVE_POWER,
                 table_size: Optional[int] = None):
        V = len(vocabulary)
        if table_size is None:
            table_size = min(MAX_TABLE_SIZE, max(MIN_TABLE_SIZE, 100 * V))
        self.probabilities = negative_sampling_distribution(vocabulary.counts, power)
        cumulative = np.cumsum(self.probabilities)
        cumulative[-1] = 1.0
        slots = (np.arange(table_size, dtype=np.float64) + 0.5) / table_size
        self.table = np.searchsorted(cumulative, slots, side="right").astype(np.int32)
        np.minimum(self.table, V - 1, out=self.table)
        self.table.setflags(write=False)
        logger.debug("built negative sampling table with %d slots for %d tokens", table_size, V)

    def __len__(self) -> int:
        return len(self.table)

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        """Draw `size` token ids."""
        return self.table[rng.integers(0, len(self.table), size=size)]
