"""Evaluation harness for LLM answer extraction.

This package provides tools for:
- Loading named test cases from a JSON dataset
- Caching model predictions by request fingerprint to avoid repeated calls
- Running extractions with bounded concurrency
- Calculating multiset-aware metrics (precision/recall/F1, MAP, MRR, NDCG@k)
- Generating evaluation reports
"""
