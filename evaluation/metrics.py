"""Evaluation metrics for extracted answers.

Predictions and ground truth are ordered lists of strings. Duplicates are
meaningful: for a query like "every R in StrawbeRry" the truth ``["r", "R",
"r"]`` expects three matches, so every metric here uses multiset semantics.
A predicted token only counts as a hit while the truth still has unmatched
copies of it.

Metrics:
- Precision / Recall / F1 over the multiset intersection
- Average precision (order-sensitive)
- Reciprocal rank of the first hit
- NDCG@k with binary gains
"""

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class MetricResult:
    """All metrics for a single predicted/truth pair."""
    precision: float
    recall: float
    f1: float
    tp: int
    pred_count: int
    truth_count: int
    ap: float
    rr: float
    ndcg: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def multiset(items: Iterable[str]) -> Counter:
    """Build a token -> occurrence count mapping."""
    return Counter(items)


def _f1(precision: float, recall: float) -> float:
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def precision_recall_f1(predicted: Sequence[str], truth: Sequence[str]) -> Dict[str, float]:
    """Calculate multiset precision, recall and F1.

    tp = sum over tokens of min(count in predicted, count in truth)

    Args:
        predicted: Predicted answers
        truth: Ground-truth answers (duplicates significant)

    Returns:
        Dict with precision, recall, f1, tp, pred_count, truth_count

    Examples:
        >>> precision_recall_f1(["r", "R", "x"], ["r", "R", "r"])["tp"]
        2
    """
    pred_counts = multiset(predicted)
    truth_counts = multiset(truth)
    pred_count = sum(pred_counts.values())
    truth_count = sum(truth_counts.values())
    tp = sum((pred_counts & truth_counts).values())

    precision = tp / pred_count if pred_count else 0.0
    recall = tp / truth_count if truth_count else 0.0
    return {
        "precision": precision,
        "recall": recall,
        "f1": _f1(precision, recall),
        "tp": tp,
        "pred_count": pred_count,
        "truth_count": truth_count,
    }


def set_precision_recall_f1(predicted: Sequence[str], truth: Sequence[str]) -> Dict[str, float]:
    """Set-semantics precision/recall/F1 (duplicates collapsed).

    Kept for comparison with the multiset variant; not used when
    duplicate answers matter.
    """
    pred_set = set(predicted)
    truth_set = set(truth)
    tp = len(pred_set & truth_set)
    precision = tp / len(pred_set) if pred_set else 0.0
    recall = tp / len(truth_set) if truth_set else 0.0
    return {
        "precision": precision,
        "recall": recall,
        "f1": _f1(precision, recall),
        "tp": tp,
        "fp": max(0, len(pred_set) - tp),
        "fn": max(0, len(truth_set) - tp),
    }


def _consumed_hits(predicted: Sequence[str], truth: Sequence[str]) -> list[bool]:
    """Mark each prediction as a hit while truth multiplicity remains."""
    remaining = multiset(truth)
    hits = []
    for token in predicted:
        if remaining[token] > 0:
            remaining[token] -= 1
            hits.append(True)
        else:
            hits.append(False)
    return hits


def average_precision(predicted: Sequence[str], truth: Sequence[str]) -> float:
    """Calculate multiset average precision.

    Walks the prediction left to right; each hit at 1-indexed position i
    adds hits_so_far / i. The sum is divided by the truth size.

    Returns:
        AP score (0-1), 0.0 for empty truth
    """
    truth_count = len(truth)
    if not truth_count:
        return 0.0

    hits = 0
    total = 0.0
    for position, hit in enumerate(_consumed_hits(predicted, truth), start=1):
        if hit:
            hits += 1
            total += hits / position
    return total / truth_count


def reciprocal_rank(predicted: Sequence[str], truth: Sequence[str]) -> float:
    """Calculate reciprocal rank of the first hit (0.0 if none)."""
    for position, hit in enumerate(_consumed_hits(predicted, truth), start=1):
        if hit:
            return 1.0 / position
    return 0.0


def calculate_ndcg_at_k(
    predicted: Sequence[str],
    truth: Sequence[str],
    k: Optional[int] = None
) -> float:
    """Calculate Normalized Discounted Cumulative Gain at K.

    Gains are binary and consume truth multiplicity, so a token repeated
    more often than the truth contains it scores 0 on the extra copies.

    Args:
        predicted: Predicted answers in ranked order
        truth: Ground-truth answers
        k: Number of top predictions to evaluate (default: all)

    Returns:
        NDCG@K score (0-1, higher is better)
    """
    if k is None:
        k = len(predicted)
    truth_count = len(truth)
    if not truth_count or k <= 0:
        return 0.0

    gains = [1.0 if hit else 0.0 for hit in _consumed_hits(predicted[:k], truth)]

    # idx starts at 0, so the discount is log2(idx + 2)
    dcg = sum(gain / np.log2(idx + 2) for idx, gain in enumerate(gains))

    ideal_ones = min(k, truth_count)
    idcg = sum(1.0 / np.log2(idx + 2) for idx in range(ideal_ones))

    if idcg == 0:
        return 0.0

    return float(dcg / idcg)


def evaluate_prediction(
    predicted: Sequence[str],
    truth: Sequence[str],
    k: Optional[int] = None
) -> MetricResult:
    """Compute every metric for one predicted/truth pair.

    Args:
        predicted: Predicted answers in ranked order
        truth: Ground-truth answers
        k: NDCG cutoff (default: length of the prediction)

    Returns:
        MetricResult with all scores
    """
    prf = precision_recall_f1(predicted, truth)
    return MetricResult(
        precision=prf["precision"],
        recall=prf["recall"],
        f1=prf["f1"],
        tp=prf["tp"],
        pred_count=prf["pred_count"],
        truth_count=prf["truth_count"],
        ap=average_precision(predicted, truth),
        rr=reciprocal_rank(predicted, truth),
        ndcg=calculate_ndcg_at_k(predicted, truth, k),
    )
