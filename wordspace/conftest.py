import numpy as np
import pytest

# Shared token streams for the training and CLI tests.

GROUP_A = ["apple", "pear", "plum", "fig", "lime"]
GROUP_B = ["car", "bus", "train", "truck", "bike"]


def _two_topic_corpus(n_blocks=30, block=40, seed=0):
    """Alternating blocks of tokens from two disjoint groups."""
    rng = np.random.default_rng(seed)
    tokens = []
    for i in range(n_blocks):
        group = GROUP_A if i % 2 == 0 else GROUP_B
        tokens.extend(rng.choice(group, size=block).tolist())
    return tokens


@pytest.fixture
def two_topic_corpus():
    """Factory for the two-topic token stream; call it with optional sizes."""
    return _two_topic_corpus


@pytest.fixture
def topic_groups():
    return GROUP_A, GROUP_B
