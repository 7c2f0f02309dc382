"""Unit tests for the evaluation orchestrator."""

import json

import pytest

from vibe_search.exceptions import EvaluationError
from vibe_search.services.llm.extractor import BaselineAnswerExtractor

from evaluation.dataset import DatasetItem
from evaluation.evaluator import (
    EvaluationReport,
    EvaluationRow,
    Evaluator,
    PredictionRecord,
    save_report,
    summarize,
)
from evaluation.metrics import evaluate_prediction
from evaluation.pool import PoolError


class TestEvaluatorInit:
    """Test evaluator configuration."""

    def test_coerces_k_and_concurrency(self, make_extractor, cache):
        evaluator = Evaluator(make_extractor(), cache, k=0, concurrency=-3)

        assert evaluator.k == 1
        assert evaluator.concurrency == 1

    def test_model_defaults_to_extractor_model(self, make_extractor, cache):
        assert Evaluator(make_extractor(), cache).model == "fake-model"
        assert Evaluator(make_extractor(), cache, model="other").model == "other"


class TestPredict:
    """Test cache -> extractor flow for single items."""

    @pytest.mark.asyncio
    async def test_fresh_prediction_is_cached(self, make_extractor, cache, strawberry_item):
        extractor = make_extractor(answers={"R,r": ["r", "R", "r"]})
        evaluator = Evaluator(extractor, cache, k=10)

        record = await evaluator.predict(strawberry_item)

        assert record.predicted == ["r", "R", "r"]
        assert record.from_cache is False
        assert len(extractor.calls) == 1
        assert cache.get(evaluator.fingerprint(strawberry_item)).predicted == ["r", "R", "r"]

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, make_extractor, cache, strawberry_item):
        extractor = make_extractor(answers={"R,r": ["r", "R", "r"]})
        evaluator = Evaluator(extractor, cache, k=10)

        first = await evaluator.predict(strawberry_item)
        second = await evaluator.predict(strawberry_item)

        assert second.from_cache is True
        assert second.predicted == first.predicted
        assert second.elapsed_ms == first.elapsed_ms
        assert len(extractor.calls) == 1

    @pytest.mark.asyncio
    async def test_disabled_cache_always_calls_extractor(
        self, make_extractor, disabled_cache, strawberry_item
    ):
        extractor = make_extractor(answers={"R,r": ["r"]})
        evaluator = Evaluator(extractor, disabled_cache)

        await evaluator.predict(strawberry_item)
        record = await evaluator.predict(strawberry_item)

        assert record.from_cache is False
        assert len(extractor.calls) == 2

    @pytest.mark.asyncio
    async def test_truncates_to_k(self, make_extractor, cache):
        extractor = make_extractor(answers={"q": ["a", "b", "c", "d"]})
        evaluator = Evaluator(extractor, cache, k=2)

        record = await evaluator.predict(DatasetItem(name="n", content="abcd", query="q"))

        assert record.predicted == ["a", "b"]
        assert extractor.calls[0][2] == 2

    @pytest.mark.asyncio
    async def test_corrupt_cache_entry_recomputed(self, make_extractor, cache, strawberry_item):
        extractor = make_extractor(answers={"R,r": ["r"]})
        evaluator = Evaluator(extractor, cache)
        key = evaluator.fingerprint(strawberry_item)
        cache.get_cache_path(key).write_text("garbage", encoding="utf-8")

        record = await evaluator.predict(strawberry_item)

        assert record.from_cache is False
        assert len(extractor.calls) == 1

    @pytest.mark.asyncio
    async def test_raw_saved_when_enabled(self, make_extractor, tmp_path, strawberry_item):
        from evaluation.response_cache import ResponseCache

        cache = ResponseCache(tmp_path / "cache", save_raw=True)
        extractor = make_extractor(answers={"R,r": ["r"]}, raw='{"answers": ["r"]}')
        evaluator = Evaluator(extractor, cache)

        await evaluator.predict(strawberry_item)

        raw_path = cache.cache_dir / "raw" / f"{evaluator.fingerprint(strawberry_item)}.txt"
        assert raw_path.read_text(encoding="utf-8") == '{"answers": ["r"]}'

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_coalesced(self, make_extractor, cache, strawberry_item):
        """Two in-flight items with one fingerprint make a single call."""
        extractor = make_extractor(answers={"R,r": ["r", "R", "r"]}, delay=0.02)
        evaluator = Evaluator(extractor, cache, concurrency=2)

        records = await evaluator.predict_all([strawberry_item, strawberry_item])

        assert len(extractor.calls) == 1
        assert sorted(r.from_cache for r in records) == [False, True]
        assert records[0].predicted == records[1].predicted
        assert evaluator._key_locks == {}

    @pytest.mark.asyncio
    async def test_empty_raw_saved_when_enabled(self, make_extractor, tmp_path, strawberry_item):
        from evaluation.response_cache import ResponseCache

        cache = ResponseCache(tmp_path / "cache", save_raw=True)
        evaluator = Evaluator(make_extractor(answers={"R,r": ["r"]}), cache)

        await evaluator.predict(strawberry_item)

        raw_path = cache.cache_dir / "raw" / f"{evaluator.fingerprint(strawberry_item)}.txt"
        assert raw_path.read_text(encoding="utf-8") == ""

    @pytest.mark.asyncio
    async def test_key_locks_released_after_failure(self, make_extractor, cache, strawberry_item):
        extractor = make_extractor(fail_on={"R,r"})
        evaluator = Evaluator(extractor, cache)

        with pytest.raises(RuntimeError):
            await evaluator.predict(strawberry_item)

        assert evaluator._key_locks == {}
        assert evaluator._key_users == {}


class TestScoreAndSummarize:
    """Test per-item rows and aggregate summary."""

    def test_score_success(self, make_extractor, cache, strawberry_item):
        evaluator = Evaluator(make_extractor(), cache, k=10)
        prediction = PredictionRecord(
            name=strawberry_item.name, predicted=["r", "R", "x"], elapsed_ms=12, from_cache=True
        )

        row = evaluator.score(strawberry_item, prediction).to_dict()

        assert row == {
            "name": "find Rs in StrawbeRry",
            "k": 3,
            "precision": 0.667,
            "recall": 0.667,
            "f1": 0.667,
            "ap": 0.667,
            "mrr": 1.0,
            "ndcg": 0.765,
            "ms": 12,
            "cache": "Y",
        }

    def test_score_error(self, make_extractor, cache, strawberry_item):
        evaluator = Evaluator(make_extractor(), cache)

        row = evaluator.score(strawberry_item, PoolError(error="boom"))

        assert row.to_dict() == {"name": "find Rs in StrawbeRry", "error": "boom"}

    def test_summarize_skips_errors(self):
        rows = [
            EvaluationRow(name="a", k=1, metrics=evaluate_prediction(["a"], ["a"], 1), ms=10),
            EvaluationRow(name="b", k=1, metrics=evaluate_prediction(["x"], ["b"], 1), ms=30),
            EvaluationRow(name="c", error="quota"),
        ]

        summary = summarize(rows)

        assert summary == {
            "count": 2,
            "precision": 0.5,
            "recall": 0.5,
            "f1": 0.5,
            "map": 0.5,
            "mrr": 0.5,
            "ndcg": 0.5,
            "avg_ms": 20,
        }

    def test_summarize_empty(self):
        summary = summarize([])

        assert summary["count"] == 0
        assert summary["f1"] == 0.0
        assert summary["avg_ms"] == 0


class TestRun:
    """Test full dataset runs."""

    @pytest.mark.asyncio
    async def test_dry_run_scores_perfect_matches(self, cache, sample_items):
        evaluator = Evaluator(BaselineAnswerExtractor(), cache, k=10)

        report = await evaluator.run(sample_items[:2])

        assert [row.name for row in report.rows] == ["find Rs in StrawbeRry", "letters"]
        assert report.summary["count"] == 2
        assert report.summary["f1"] == 1.0
        assert report.summary["ndcg"] == 1.0
        assert report.config["model"] == "baseline"

    @pytest.mark.asyncio
    async def test_failed_item_does_not_abort(self, make_extractor, cache, sample_items):
        extractor = make_extractor(
            answers={"R,r": ["r", "R", "r"], "B,c": ["B"]},
            fail_on={"Where are the web standards?"},
        )
        evaluator = Evaluator(extractor, cache, concurrency=2)

        report = await evaluator.run(sample_items)
        rows = [row.to_dict() for row in report.rows]

        assert rows[2] == {"name": "urls", "error": "quota exceeded for Where are the web standards?"}
        assert rows[0]["f1"] == 1.0
        assert report.summary["count"] == 2

    @pytest.mark.asyncio
    async def test_item_without_query_becomes_error_row(self, make_extractor, cache, strawberry_item):
        extractor = make_extractor(answers={"R,r": ["r", "R", "r"]})
        evaluator = Evaluator(extractor, cache)
        noquery = DatasetItem(name="noquery", content="StrawbeRry", query="", truth=["r"])

        report = await evaluator.run([strawberry_item, noquery])
        rows = [row.to_dict() for row in report.rows]

        assert rows[1] == {"name": "noquery", "error": "Missing query"}
        assert rows[0]["f1"] == 1.0
        assert report.summary["count"] == 1

    @pytest.mark.asyncio
    async def test_custom_config_snapshot(self, make_extractor, cache, sample_items):
        evaluator = Evaluator(make_extractor(), cache)

        report = await evaluator.run(sample_items[:1], config={"k": 10, "dry": True})

        assert report.config == {"k": 10, "dry": True}
        assert report.ts


class TestSaveReport:
    """Test report persistence."""

    def test_writes_json(self, tmp_path):
        report = EvaluationReport(
            config={"k": 3},
            rows=[EvaluationRow(name="a", error="x")],
            summary=summarize([]),
            ts="2026-01-01T00:00:00+00:00",
        )

        path = save_report(report, tmp_path / "out" / "report.json")
        data = json.loads(path.read_text(encoding="utf-8"))

        assert data["config"] == {"k": 3}
        assert data["rows"] == [{"name": "a", "error": "x"}]
        assert data["ts"] == "2026-01-01T00:00:00+00:00"
        assert set(data["summary"]) == {
            "count", "precision", "recall", "f1", "map", "mrr", "ndcg", "avg_ms"
        }

    def test_unwritable_path_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        report = EvaluationReport(config={}, rows=[], summary=summarize([]))

        with pytest.raises(EvaluationError, match="Failed to save report"):
            save_report(report, blocker / "report.json")
