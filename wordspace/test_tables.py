import numpy as np

from wordspace.tables import (
    NegativeSamplingTable,
    build_huffman_tree,
    negative_sampling_distribution,
)
from wordspace.vocab import Token, Vocabulary


def _vocab(counts):
    tokens = [Token(f"w{i}", i, c) for i, c in enumerate(counts)]
    return Vocabulary(tokens, total_count=sum(counts))


def test_huffman_textbook_example():
    tree = build_huffman_tree(_vocab([45, 16, 13, 12, 9, 5]))
    np.testing.assert_array_equal(tree.code_of(0), [0])
    np.testing.assert_array_equal(tree.code_of(5), [1, 1, 0, 0])
    np.testing.assert_array_equal(tree.code_of(1), [1, 1, 1])
    # Paths are inner-node rows, root (last merge) first.
    np.testing.assert_array_equal(tree.path_of(0), [4])
    np.testing.assert_array_equal(tree.path_of(5), [4, 3, 2, 0])
    assert tree.inner_nodes == 5
    assert tree.max_depth == 4


def test_huffman_codes_prefix_free_and_paths_match_codes():
    counts = [50, 30, 30, 10, 7, 7, 3, 2, 1, 1]
    tree = build_huffman_tree(_vocab(counts))
    codes = ["".join(map(str, c)) for c in tree.codes]
    for i, a in enumerate(codes):
        for j, b in enumerate(codes):
            if i != j:
                assert not b.startswith(a)
    for code, path in zip(tree.codes, tree.points):
        assert len(code) == len(path)
        assert np.all(path < len(counts) - 1)
    # More frequent tokens never get longer codes.
    lengths = [len(c) for c in tree.codes]
    assert lengths == sorted(lengths)


def test_huffman_deterministic():
    counts = [5, 5, 5, 5, 2, 2]
    t1, t2 = build_huffman_tree(_vocab(counts)), build_huffman_tree(_vocab(counts))
    for a, b in zip(t1.codes, t2.codes):
        np.testing.assert_array_equal(a, b)


def test_huffman_single_token():
    tree = build_huffman_tree(_vocab([3]))
    assert len(tree.code_of(0)) == 0
    assert tree.inner_nodes == 0


def test_negative_sampling_distribution():
    counts = np.array([10.0, 1.0, 100.0])
    probs = negative_sampling_distribution(counts, power=0.75)
    assert np.isclose(probs.sum(), 1.0)
    assert np.all(probs > 0)
    assert probs[2] > probs[0] > probs[1]  # higher count -> higher prob


def test_negative_sampling_ratio_follows_power():
    table = NegativeSamplingTable(_vocab([9, 1]))
    draws = table.sample(np.random.default_rng(0), 100_000)
    n0, n1 = np.sum(draws == 0), np.sum(draws == 1)
    assert n0 + n1 == 100_000
    assert abs(n0 / n1 - 9 ** 0.75) < 0.3


def test_negative_sampling_table_covers_every_token():
    table = NegativeSamplingTable(_vocab([1000, 100, 10, 1]), table_size=10_000)
    assert len(table) == 10_000
    assert set(np.unique(table.table)) == {0, 1, 2, 3}
