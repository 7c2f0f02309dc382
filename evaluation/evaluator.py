"""Orchestrate evaluation of extracted answers against a dataset.

This module handles:
- Running each dataset item through cache -> extractor -> metrics
- Bounding the number of concurrent extractor calls
- Aggregating per-item metrics into a summary
- Persisting the report as JSON
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from vibe_search.exceptions import EvaluationError
from vibe_search.services.llm.extractor import AnswerExtractor

from evaluation.dataset import DatasetItem
from evaluation.metrics import MetricResult, evaluate_prediction
from evaluation.pool import PoolError, run_bounded
from evaluation.response_cache import DEFAULT_SCHEMA_VERSION, ResponseCache, fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionRecord:
    """Prediction for a single dataset item."""
    name: str
    predicted: List[str]
    elapsed_ms: int
    from_cache: bool = False


@dataclass
class EvaluationRow:
    """Report row for one dataset item: either scored or failed."""
    name: str
    k: int = 0
    metrics: Optional[MetricResult] = None
    ms: int = 0
    from_cache: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        if self.error is not None or self.metrics is None:
            return {"name": self.name, "error": self.error}
        m = self.metrics
        return {
            "name": self.name,
            "k": self.k,
            "precision": round(m.precision, 3),
            "recall": round(m.recall, 3),
            "f1": round(m.f1, 3),
            "ap": round(m.ap, 3),
            "mrr": round(m.rr, 3),
            "ndcg": round(m.ndcg, 3),
            "ms": self.ms,
            "cache": "Y" if self.from_cache else "",
        }


@dataclass
class EvaluationReport:
    """Terminal artifact of an evaluation run."""
    config: Dict[str, Any]
    rows: List[EvaluationRow]
    summary: Dict[str, Any]
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "config": self.config,
            "rows": [row.to_dict() for row in self.rows],
            "summary": self.summary,
            "ts": self.ts,
        }


def summarize(rows: Sequence[EvaluationRow]) -> Dict[str, Any]:
    """Average metrics over the scored rows; failed rows are skipped."""
    scored = [row for row in rows if row.metrics is not None and row.error is None]
    count = len(scored)
    denom = max(1, count)

    def mean(attr: str) -> float:
        return round(sum(getattr(row.metrics, attr) for row in scored) / denom, 4)

    return {
        "count": count,
        "precision": mean("precision"),
        "recall": mean("recall"),
        "f1": mean("f1"),
        "map": mean("ap"),
        "mrr": mean("rr"),
        "ndcg": mean("ndcg"),
        "avg_ms": round(sum(row.ms for row in scored) / denom),
    }


class Evaluator:
    """Run a dataset through an extractor and score the predictions.

    Examples:
        >>> from vibe_search.services.llm import create_extractor
        >>> evaluator = Evaluator(create_extractor(dry=True), ResponseCache(".cache"))
        >>> report = asyncio.run(evaluator.run(items))
        >>> print(report.summary["f1"])
    """

    def __init__(
        self,
        extractor: AnswerExtractor,
        cache: ResponseCache,
        k: int = 10,
        model: Optional[str] = None,
        concurrency: int = 2,
        schema_version: str = DEFAULT_SCHEMA_VERSION
    ):
        """Initialize the evaluator.

        Args:
            extractor: Search capability used on cache misses
            cache: Prediction cache (may be disabled)
            k: Cutoff applied to predictions and NDCG (coerced to >= 1)
            model: Model name recorded in cache fingerprints (defaults to
                the extractor's model)
            concurrency: Maximum concurrent extractor calls (coerced to >= 1)
            schema_version: Cache schema version mixed into fingerprints
        """
        self.extractor = extractor
        self.cache = cache
        self.k = max(1, int(k))
        self.model = model or getattr(extractor, "model", None)
        self.concurrency = max(1, int(concurrency))
        self.schema_version = schema_version
        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._key_users: Dict[str, int] = {}

        logger.info(
            f"Initialized Evaluator "
            f"(k={self.k}, concurrency={self.concurrency}, cache={cache.enabled})"
        )

    def fingerprint(self, item: DatasetItem) -> str:
        """Cache key for a dataset item under this configuration."""
        return fingerprint(item.content, item.query, self.model, self.k, self.schema_version)

    async def predict(self, item: DatasetItem) -> PredictionRecord:
        """Get the prediction for one item, from cache or the extractor.

        Concurrent calls for the same fingerprint share one extractor call:
        the later caller waits for the lock and then hits the cache.

        Raises:
            ExtractionError: If the extractor fails
        """
        key = self.fingerprint(item)
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_users[key] = self._key_users.get(key, 0) + 1

        try:
            async with lock:
                return await self._predict_locked(key, item)
        finally:
            self._key_users[key] -= 1
            if not self._key_users[key]:
                del self._key_users[key]
                del self._key_locks[key]

    async def _predict_locked(self, key: str, item: DatasetItem) -> PredictionRecord:
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(
                f"[Cache] {item.name}: {len(cached.predicted)} answer(s) "
                f"{cached.predicted[:10]}"
            )
            return PredictionRecord(
                name=item.name,
                predicted=cached.predicted,
                elapsed_ms=cached.elapsed_ms,
                from_cache=True,
            )

        start = time.perf_counter()
        result = await self.extractor.search(item.content, item.query, k=self.k)
        elapsed_ms = int(round((time.perf_counter() - start) * 1000))

        self._trace(item, result.answers, result.raw)
        predicted = [str(a) for a in result.answers][:self.k]

        self.cache.set(key, predicted, elapsed_ms)
        self.cache.save_raw(key, result.raw)

        return PredictionRecord(
            name=item.name,
            predicted=predicted,
            elapsed_ms=elapsed_ms,
            from_cache=False,
        )

    def _trace(self, item: DatasetItem, answers: List[str], raw: str) -> None:
        """Log a per-item preview of a fresh extraction."""
        logger.info(f"[Search] {item.name}: {len(answers)} answer(s) {answers[:self.k]}")
        if raw:
            preview = " ".join(raw[:300].split())
            logger.debug(f"[Search] Raw preview ({len(raw)} chars): {preview}")
        if not answers:
            logger.warning(
                f"[Search] No results for \"{item.name}\". Check API key, quota, "
                f"model or prompt."
            )

    async def predict_all(
        self,
        items: Sequence[DatasetItem]
    ) -> List[Union[PredictionRecord, PoolError]]:
        """Predict every item through the bounded pool, in input order."""
        return await run_bounded(items, self.concurrency, lambda item, _: self.predict(item))

    def score(
        self,
        item: DatasetItem,
        prediction: Union[PredictionRecord, PoolError]
    ) -> EvaluationRow:
        """Score one prediction against its item's truth."""
        if isinstance(prediction, PoolError):
            return EvaluationRow(name=item.name, error=prediction.error)

        predicted = [str(p) for p in prediction.predicted]
        metrics = evaluate_prediction(predicted, item.truth, self.k)
        return EvaluationRow(
            name=item.name,
            k=len(predicted),
            metrics=metrics,
            ms=prediction.elapsed_ms,
            from_cache=prediction.from_cache,
        )

    async def run(
        self,
        items: Sequence[DatasetItem],
        config: Optional[Dict[str, Any]] = None
    ) -> EvaluationReport:
        """Evaluate a full dataset.

        Args:
            items: Dataset items
            config: Config snapshot to embed in the report

        Returns:
            EvaluationReport with per-item rows and summary
        """
        predictions = await self.predict_all(items)
        rows = [self.score(item, pred) for item, pred in zip(items, predictions)]
        summary = summarize(rows)

        logger.info(
            f"Evaluated {summary['count']}/{len(items)} item(s) "
            f"(f1={summary['f1']}, map={summary['map']})"
        )

        return EvaluationReport(
            config=config if config is not None else self.config_snapshot(),
            rows=rows,
            summary=summary,
        )

    def config_snapshot(self) -> Dict[str, Any]:
        """Default config block for reports."""
        return {
            "k": self.k,
            "model": self.model or "default",
            "concurrency": self.concurrency,
            "cache": self.cache.enabled,
        }


def save_report(report: EvaluationReport, path: Path | str) -> Path:
    """Write a report as JSON.

    Raises:
        EvaluationError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise EvaluationError(f"Failed to save report to {path}: {e}") from e
    logger.info(f"Saved report to {path}")
    return path
