import argparse
import json
import logging
import sys
from typing import List, Optional

from wordspace.cluster import kmeans
from wordspace.config import TrainingConfig
from wordspace.corpus import TokenFile
from wordspace.errors import WordspaceError
from wordspace.eval import evaluate_analogies, read_analogies
from wordspace.projection import project
from wordspace.query import QueryEngine
from wordspace.store import VectorStore
from wordspace.train import Trainer
from wordspace.vocab import Vocabulary

# Entry point. Usage:
#   python -m wordspace.run train --file corpus.txt --output vectors.bin
#   python -m wordspace.run neighbors --model vectors.bin king queen
#   python -m wordspace.run analogy --model vectors.bin man king woman
#   python -m wordspace.run cluster --model vectors.bin --centers 10 --output labels.json
#   python -m wordspace.run project --model vectors.bin --output coords.json


def _load(args) -> VectorStore:
    return VectorStore.load(args.model, binary=not args.text)


def cmd_train(args) -> None:
    config = TrainingConfig.from_namespace(args)
    tokens = TokenFile(args.file)
    trainer = Trainer(config)
    vocabulary = Vocabulary.load(args.read_vocab) if args.read_vocab else None
    resume = VectorStore.load(args.resume, binary=not args.text) if args.resume else None
    store = trainer.train(tokens, vocabulary=vocabulary, resume_from=resume)
    store.save(args.output, binary=not args.text)
    if args.save_vocab:
        trainer.vocabulary.save(args.save_vocab)
    print(f"Vocab size {len(store)}, dim {store.dim}, wrote {args.output}")
    for record in trainer.history:
        print(
            f"epoch {record['epoch']} words {record['words']} lr {record['lr']:.6f} "
            f"loss {record['loss']:.4f} {record['seconds']:.1f}s"
        )


def cmd_neighbors(args) -> None:
    engine = QueryEngine(_load(args))
    for token in args.tokens:
        nn = engine.nearest_to_token(token, n=args.n)
        nn_str = ", ".join(f"{w}({s:.3f})" for w, s in nn)
        print(f"  '{token}' -> {nn_str}")


def cmd_analogy(args) -> None:
    engine = QueryEngine(_load(args))
    if args.questions:
        report = evaluate_analogies(engine, read_analogies(args.questions, lowercase=args.lowercase))
        for section, stats in report.items():
            if stats["total"]:
                acc = 100.0 * stats["correct"] / stats["total"]
                print(f"{section}: {stats['correct']}/{stats['total']} = {acc:.1f}% "
                      f"({stats['skipped']} skipped)")
            else:
                print(f"{section}: no questions in vocabulary ({stats['skipped']} skipped)")
        return
    if len(args.tokens) != 3:
        raise SystemExit("analogy needs exactly three tokens: a b c (a is to b as c is to ?)")
    a, b, c = args.tokens
    for w, s in engine.analogy(a, b, c, n=args.n):
        print(f"  {b} - {a} + {c} = {w} ({s:.3f})")


def cmd_cluster(args) -> None:
    store = _load(args)
    tokens = store.words[:args.limit] if args.limit else None
    result = kmeans(store, args.centers, max_iterations=args.max_iterations,
                    seed=args.seed, tokens=tokens, normalize=True)
    with open(args.output, "w") as f:
        json.dump(result.assignment(), f, indent=0)
    print(f"{args.centers} clusters, {result.iterations} iterations, "
          f"converged={result.converged}; wrote {args.output}")


def cmd_project(args) -> None:
    store = _load(args)
    tokens = store.words[:args.limit] if args.limit else None
    coords = project(store, tokens, method=args.method, perplexity=args.perplexity,
                     iterations=args.iterations, seed=args.seed)
    with open(args.output, "w") as f:
        json.dump({w: list(xy) for w, xy in coords.items()}, f, indent=0)
    print(f"Projected {len(coords)} tokens with {args.method}; wrote {args.output}")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="wordspace")
    sub = ap.add_subparsers(dest="command", required=True)

    tr = sub.add_parser("train", help="Train vectors from a whitespace-tokenized file")
    tr.add_argument("--file", required=True, help="Token file (already tokenized)")
    tr.add_argument("--output", required=True)
    tr.add_argument("--text", action="store_true", help="Write/read the text layout")
    tr.add_argument("--save-vocab", dest="save_vocab", default=None)
    tr.add_argument("--read-vocab", dest="read_vocab", default=None)
    tr.add_argument("--resume", default=None, help="Continue from a stored model")
    tr.add_argument("--dim", dest="embedding_dimension", type=int, default=100)
    tr.add_argument("--window", type=int, default=5)
    tr.add_argument("--min-count", dest="min_count", type=int, default=5)
    tr.add_argument("--negative", dest="negative_samples", type=int, default=5)
    tr.add_argument("--hs", dest="use_hierarchical_softmax", action="store_true")
    tr.add_argument(
        "--epochs",
        type=int,
        default=5,
        help="For large corpora (e.g. text8) use 1-2 for a quicker run",
    )
    tr.add_argument("--lr", dest="initial_learning_rate", type=float, default=0.025)
    tr.add_argument("--threads", type=int, default=None)
    tr.add_argument("--sample", dest="subsample_threshold", type=float, default=1e-3)
    tr.add_argument("--seed", type=int, default=None)
    tr.add_argument("--cbow", dest="architecture", action="store_const", const="cbow",
                    default="skipgram")
    tr.add_argument("--cbow-sum", dest="cbow_mean", action="store_false")
    tr.add_argument("--max-vocab", dest="max_vocab", type=int, default=None)
    tr.add_argument("--compute-loss", dest="compute_loss", action="store_true")
    tr.set_defaults(func=cmd_train)

    for name, func, help_text in (
        ("neighbors", cmd_neighbors, "Nearest neighbours of tokens"),
        ("analogy", cmd_analogy, "a is to b as c is to ?"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--model", required=True)
        p.add_argument("--text", action="store_true")
        p.add_argument("-n", type=int, default=5)
        p.add_argument("tokens", nargs="*")
        p.set_defaults(func=func)
    sub.choices["analogy"].add_argument("--questions", default=None,
                                        help="questions-words file to score")
    sub.choices["analogy"].add_argument("--lowercase", action="store_true")

    cl = sub.add_parser("cluster", help="k-means labels as JSON")
    cl.add_argument("--model", required=True)
    cl.add_argument("--text", action="store_true")
    cl.add_argument("--output", required=True)
    cl.add_argument("--centers", type=int, default=10)
    cl.add_argument("--max-iterations", dest="max_iterations", type=int, default=100)
    cl.add_argument("--limit", type=int, default=None, help="Only the N most frequent tokens")
    cl.add_argument("--seed", type=int, default=None)
    cl.set_defaults(func=cmd_cluster)

    pr = sub.add_parser("project", help="2-D coordinates as JSON")
    pr.add_argument("--model", required=True)
    pr.add_argument("--text", action="store_true")
    pr.add_argument("--output", required=True)
    pr.add_argument("--method", choices=("tsne", "pca"), default="tsne")
    pr.add_argument("--perplexity", type=float, default=50.0)
    pr.add_argument("--iterations", type=int, default=1000)
    pr.add_argument("--limit", type=int, default=500)
    pr.add_argument("--seed", type=int, default=None)
    pr.set_defaults(func=cmd_project)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    """Run one subcommand; library, format and I/O errors exit with status 1."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    try:
        args.func(args)
    except (WordspaceError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
