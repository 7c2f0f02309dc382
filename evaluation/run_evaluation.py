#!/usr/bin/env python3
"""CLI script to evaluate answer extraction against a dataset.

Usage:
    python -m evaluation.run_evaluation --dry
    python -m evaluation.run_evaluation --dataset my_dataset.json --k 5
    python -m evaluation.run_evaluation --provider gemini --concurrency 4 --nocache
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from vibe_search.config import get_settings
from vibe_search.exceptions import CacheError, ConfigurationError, DatasetError, EvaluationError
from vibe_search.services.llm.extractor import create_extractor

from evaluation.dataset import DEFAULT_DATASET_PATH, load_dataset, load_default_dataset
from evaluation.evaluator import EvaluationReport, Evaluator, save_report
from evaluation.response_cache import ResponseCache

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_PATH = Path(__file__).parent / "eval_results.json"

USAGE_HINT = (
    "Set GROQ_API_KEY (or GEMINI_API_KEY with --provider gemini) or run with --dry "
    "for the baseline. Optional: --dataset <path> --k <n> --model <name> "
    "--concurrency <n> --nocache --saveRaw"
)

ROW_COLUMNS = ["name", "k", "precision", "recall", "f1", "ap", "mrr", "ndcg", "ms", "cache"]


def positive_int(value: str) -> int:
    """argparse type: integer coerced to at least 1."""
    try:
        return max(1, int(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Evaluate LLM answer extraction against a ground-truth dataset"
    )
    parser.add_argument("--dataset", type=str, help="Dataset JSON file (default: bundled sample)")
    parser.add_argument(
        "--k", type=positive_int, default=settings.eval_k,
        help="Cutoff depth for ranking metrics"
    )
    parser.add_argument("--model", type=str, help="Model identifier (default: provider default)")
    parser.add_argument(
        "--provider", choices=["groq", "gemini"], default=settings.default_provider,
        help="LLM provider"
    )
    parser.add_argument(
        "--concurrency", type=positive_int, default=settings.eval_concurrency,
        help="Maximum concurrent extraction calls"
    )
    parser.add_argument("--dry", action="store_true", help="Use the deterministic baseline, no API calls")
    parser.add_argument("--nocache", action="store_true", help="Disable the prediction cache")
    parser.add_argument("--saveRaw", dest="save_raw", action="store_true", help="Store raw model output in the cache")
    parser.add_argument("--cache-dir", type=str, default=settings.cache_dir, help="Cache directory")
    parser.add_argument(
        "--output", type=str, default=str(DEFAULT_OUTPUT_PATH),
        help="Where to write the JSON report"
    )
    return parser


def print_results(report: EvaluationReport) -> None:
    """Pretty print the per-item table and the summary."""
    rows = [row.to_dict() for row in report.rows]

    print("\n" + "=" * 80)
    print("EVALUATION RESULTS")
    print("=" * 80 + "\n")

    if not rows:
        print("No results to display.")
    else:
        cells = [
            [str(row.get(col, "")) for col in ROW_COLUMNS]
            if "error" not in row
            else [str(row["name"]), f"ERROR: {row['error']}"]
            for row in rows
        ]
        widths = [
            max([len(col)] + [len(c[i]) for c in cells if len(c) == len(ROW_COLUMNS)])
            for i, col in enumerate(ROW_COLUMNS)
        ]
        print("  ".join(col.ljust(w) for col, w in zip(ROW_COLUMNS, widths)))
        print("  ".join("-" * w for w in widths))
        for c in cells:
            if len(c) == len(ROW_COLUMNS):
                print("  ".join(v.ljust(w) for v, w in zip(c, widths)))
            else:
                print(f"{c[0].ljust(widths[0])}  {c[1]}")

    summary = report.summary
    print("\n" + "-" * 80)
    print("SUMMARY")
    print("-" * 80)
    print(f"Items scored: {summary['count']}")
    print(f"Precision: {summary['precision']:.4f}")
    print(f"Recall:    {summary['recall']:.4f}")
    print(f"F1:        {summary['f1']:.4f}")
    print(f"MAP:       {summary['map']:.4f}")
    print(f"MRR:       {summary['mrr']:.4f}")
    print(f"NDCG:      {summary['ndcg']:.4f}")
    print(f"Avg ms:    {summary['avg_ms']}")
    print()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Process exit status
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = build_parser().parse_args(argv)

    if not args.dry and not settings.api_key_for(args.provider):
        logger.error(f"No API key for provider '{args.provider}'. {USAGE_HINT}")
        return 1

    try:
        if args.dataset:
            dataset_path = Path(args.dataset).resolve()
            items = load_dataset(dataset_path)
        else:
            dataset_path = Path(settings.default_dataset_path)
            if not dataset_path.exists():
                dataset_path = DEFAULT_DATASET_PATH
            items = load_default_dataset(dataset_path)
    except DatasetError as e:
        logger.error(f"❌ {e.message}")
        return 1

    try:
        extractor = create_extractor(provider=args.provider, model=args.model, dry=args.dry)
    except ConfigurationError as e:
        logger.error(f"❌ {e.message}. {USAGE_HINT}")
        return 1

    try:
        cache = ResponseCache(
            args.cache_dir,
            enabled=settings.cache_enabled and not args.nocache,
            save_raw=args.save_raw,
        )
    except CacheError as e:
        logger.error(f"❌ {e.message}")
        return 1

    evaluator = Evaluator(
        extractor=extractor,
        cache=cache,
        k=args.k,
        model=args.model,
        concurrency=args.concurrency,
        schema_version=settings.cache_schema_version,
    )

    config = {
        "k": evaluator.k,
        "model": args.model or "default",
        "provider": "baseline" if args.dry else args.provider,
        "dataset": str(dataset_path),
        "dry": args.dry,
        "concurrency": evaluator.concurrency,
        "cache": cache.enabled,
    }
    logger.info(f"Eval config: {config}")
    print(f"\n🚀 {settings.app_name} v{settings.app_version}: evaluating {len(items)} item(s)...\n")

    report = asyncio.run(evaluator.run(items, config=config))
    print_results(report)

    try:
        output_path = save_report(report, args.output)
    except EvaluationError as e:
        logger.error(f"❌ {e.message}")
        return 1

    print(f"✅ Results saved to {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
