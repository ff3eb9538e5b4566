from wordspace.cluster import ClusterResult, kmeans
from wordspace.config import TrainingConfig
from wordspace.corpus import TokenFile, encode
from wordspace.errors import (
    ConvergenceWarning,
    EmptyCorpus,
    TrainingAborted,
    UnknownToken,
    VocabularyMismatch,
    WordspaceError,
    ZeroVector,
)
from wordspace.projection import project
from wordspace.query import QueryEngine, cosine_similarity
from wordspace.store import VectorStore
from wordspace.tables import HuffmanTree, NegativeSamplingTable, build_huffman_tree
from wordspace.train import Trainer, train
from wordspace.vocab import Token, Vocabulary, build_vocab

# Token embeddings in NumPy (skip-gram / CBOW with negative sampling or
# hierarchical softmax) and a query engine over the trained vectors.

__all__ = [
    "ClusterResult",
    "ConvergenceWarning",
    "EmptyCorpus",
    "HuffmanTree",
    "NegativeSamplingTable",
    "QueryEngine",
    "Token",
    "TokenFile",
    "Trainer",
    "TrainingAborted",
    "TrainingConfig",
    "UnknownToken",
    "VectorStore",
    "VocabularyMismatch",
    "Vocabulary",
    "WordspaceError",
    "ZeroVector",
    "build_huffman_tree",
    "build_vocab",
    "cosine_similarity",
    "encode",
    "kmeans",
    "project",
    "train",
]
