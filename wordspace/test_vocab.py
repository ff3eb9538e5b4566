import numpy as np
import pytest

from wordspace.corpus import TokenFile, encode
from wordspace.errors import EmptyCorpus, UnknownToken
from wordspace.vocab import Token, Vocabulary, build_vocab

# Vocabulary building, subsampling probabilities, token streams.


def test_min_count_discards_rare_tokens():
    vocab = build_vocab(["a", "a", "b", "c", "a"], min_count=2)
    assert vocab.words == ["a"]
    assert vocab["a"].index == 0
    assert vocab["a"].count == 3
    assert "b" not in vocab and "c" not in vocab
    # Discarded tokens still count towards the corpus total.
    assert vocab.total_count == 5


def test_ids_follow_descending_frequency_with_first_seen_ties():
    vocab = build_vocab("x y y z z x w q q q".split(), min_count=1)
    assert vocab.words == ["q", "x", "y", "z", "w"]
    assert [t.index for t in vocab] == list(range(5))


def test_empty_corpus():
    with pytest.raises(EmptyCorpus) as exc:
        build_vocab(["a", "b"], min_count=2)
    assert "min_count=2" in str(exc.value)
    with pytest.raises(EmptyCorpus):
        build_vocab([], min_count=1)


def test_max_size_keeps_most_frequent():
    vocab = build_vocab("a b b c c c".split(), min_count=1, max_size=2)
    assert vocab.words == ["c", "b"]


def test_unknown_token():
    vocab = build_vocab(["a", "a"], min_count=1)
    with pytest.raises(UnknownToken):
        vocab["zzz"]
    with pytest.raises(KeyError):
        vocab.index_of("zzz")
    assert vocab.get_index("zzz") == -1


def test_keep_probabilities_drop_frequent_tokens():
    vocab = build_vocab(["rare"] + ["common"] * 100, min_count=1)
    keep = vocab.keep_probabilities(1e-3)
    # P(keep) = sqrt(t / f); f = 100/101 for "common", 1/101 for "rare".
    assert np.isclose(keep[vocab.index_of("common")], np.sqrt(1e-3 / (100 / 101)))
    assert np.isclose(keep[vocab.index_of("rare")], np.sqrt(1e-3 * 101))
    assert np.all((keep >= 0) & (keep <= 1))
    np.testing.assert_array_equal(vocab.keep_probabilities(0.0), np.ones(2))


def test_keep_probability_capped_at_one():
    vocab = Vocabulary([Token("a", 0, 1)], total_count=10_000_000)
    assert vocab.keep_probabilities(1e-3)[0] == 1.0


def test_vocabulary_save_load(tmp_path):
    vocab = build_vocab("the cat the dog the cat".split(), min_count=1)
    path = str(tmp_path / "vocab.txt")
    vocab.save(path)
    loaded = Vocabulary.load(path)
    assert loaded.words == vocab.words
    np.testing.assert_array_equal(loaded.counts, vocab.counts)
    assert loaded.total_count == vocab.total_count


def test_token_file_streams_across_blocks(tmp_path):
    path = tmp_path / "corpus.txt"
    text = "alpha beta\ngamma   delta\n\n  epsilon zeta"
    path.write_text(text, encoding="utf-8")
    for block_size in (1, 3, 7, 1024):
        assert list(TokenFile(str(path), block_size=block_size)) == text.split()


def test_token_file_is_reiterable(tmp_path):
    path = tmp_path / "corpus.txt"
    path.write_text("café au lait\n", encoding="utf-8")
    tokens = TokenFile(str(path))
    assert list(tokens) == list(tokens) == ["café", "au", "lait"]


def test_encode_drops_out_of_vocabulary_tokens():
    vocab = build_vocab("a a b b b c".split(), min_count=2)
    ids = encode("a c b x a".split(), vocab)
    assert ids.dtype == np.int32
    np.testing.assert_array_equal(ids, [vocab.index_of("a"), vocab.index_of("b"), vocab.index_of("a")])
