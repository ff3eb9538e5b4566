import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from wordspace.query import QueryEngine

# Analogy evaluation (a is to b as c is to d) in the questions-words format:
# ": section" header lines, then four whitespace-separated tokens per line.

logger = logging.getLogger(__name__)

Quadruple = Tuple[str, str, str, str]

# Small built-in set (no download). Expand or load from file for full evaluation.
DEFAULT_ANALOGIES = [
    ("man", "king", "woman", "queen"),
    ("france", "paris", "germany", "berlin"),
    ("big", "biggest", "small", "smallest"),
    ("walk", "walking", "run", "running"),
]


def read_analogies(path: str, lowercase: bool = False) -> Dict[str, List[Quadruple]]:
    """Read analogy questions grouped by section.

    Args:
        path: File in questions-words format.
        lowercase: Lowercase every token. Defaults to False.

    Returns:
        Ordered mapping section name -> quadruples. Lines before the first
        header go to section "default".

    Raises:
        ValueError: If a question line does not have four tokens.
    """
    sections: Dict[str, List[Quadruple]] = OrderedDict()
    current = "default"
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            if line.startswith(":"):
                current = line[1:].strip()
                sections.setdefault(current, [])
                continue
            parts = line.lower().split() if lowercase else line.split()
            if len(parts) != 4:
                raise ValueError(f"expected 4 tokens on line {line_no} of {path}, got {len(parts)}")
            sections.setdefault(current, []).append(tuple(parts))
    return sections


def evaluate_analogies(
    engine: QueryEngine,
    analogies: Optional[Dict[str, List[Quadruple]]] = None,
) -> Dict[str, Dict[str, int]]:
    """Score "a is to b as c is to d" questions by top-1 nearest neighbour.

    Questions with any token outside the store are skipped and counted.

    Args:
        engine: Query engine over the store under test.
        analogies: Section -> quadruples. Defaults to DEFAULT_ANALOGIES.

    Returns:
        Section -> {"correct", "total", "skipped"}, plus a "total" entry.
    """
    if analogies is None:
        analogies = {"default": DEFAULT_ANALOGIES}
    report: Dict[str, Dict[str, int]] = OrderedDict()
    overall = {"correct": 0, "total": 0, "skipped": 0}
    for section, questions in analogies.items():
        stats = {"correct": 0, "total": 0, "skipped": 0}
        for a, b, c, expected in questions:
            if any(w not in engine for w in (a, b, c, expected)):
                stats["skipped"] += 1
                continue
            stats["total"] += 1
            preds = engine.analogy(a, b, c, n=1)
            if preds and preds[0][0] == expected:
                stats["correct"] += 1
        if stats["total"]:
            logger.info(
                "%s: %d/%d = %.1f%%", section, stats["correct"], stats["total"],
                100.0 * stats["correct"] / stats["total"],
            )
        report[section] = stats
        for key in overall:
            overall[key] += stats[key]
    report["total"] = overall
    return report
