"""Fingerprint-keyed cache of model predictions.

Each request is identified by a djb2 hash of its canonical JSON form
(content, query, model, k and a schema version). The prediction and its
latency are stored as ``<cache_dir>/<key>.json`` so repeated evaluation runs
never pay for the same model call twice. Bumping the schema version changes
every key and so invalidates old entries.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from vibe_search.exceptions import CacheError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_VERSION = "text-v3"


def djb2(text: str) -> str:
    """32-bit djb2 hash of a string, as lowercase hex."""
    h = 5381
    for ch in text:
        h = ((h << 5) + h + ord(ch)) & 0xFFFFFFFF
    return format(h, "x")


def fingerprint(
    content: Any,
    query: str,
    model: Optional[str],
    k: int,
    schema_version: str = DEFAULT_SCHEMA_VERSION
) -> str:
    """Derive the cache key for a request.

    Keys are sorted before hashing, so the result depends only on the
    values passed in.

    Examples:
        >>> fingerprint("abc", "b", None, 10) == fingerprint("abc", "b", None, 10)
        True
    """
    canonical = json.dumps(
        {"c": content, "q": query, "m": model, "k": k, "v": schema_version},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return djb2(canonical)


@dataclass(frozen=True)
class CacheEntry:
    """A stored prediction."""
    key: str
    predicted: List[str]
    elapsed_ms: int


class ResponseCache:
    """Manages the on-disk prediction cache for evaluation runs."""

    def __init__(
        self,
        cache_dir: Path | str,
        enabled: bool = True,
        save_raw: bool = False
    ):
        """Initialize response cache.

        Args:
            cache_dir: Directory holding ``<key>.json`` entries
            enabled: If False, lookups always miss and writes are skipped
            save_raw: Also store raw model output under ``raw/<key>.txt``

        Raises:
            CacheError: If cache_dir exists but is not a directory
        """
        self.cache_dir = Path(cache_dir)
        self.enabled = enabled
        self.save_raw_enabled = save_raw

        if self.cache_dir.exists() and not self.cache_dir.is_dir():
            raise CacheError(f"Cache path is not a directory: {self.cache_dir}")

        if self.enabled:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Response cache directory: {self.cache_dir}")

    def get_cache_path(self, key: str) -> Path:
        """Get path to the cache file for a key."""
        return self.cache_dir / f"{key}.json"

    def has(self, key: str) -> bool:
        """Check if an entry file exists for key."""
        return self.get_cache_path(key).exists()

    def get(self, key: str) -> Optional[CacheEntry]:
        """Load a cached prediction.

        Unreadable or malformed entries are treated as misses.

        Args:
            key: Request fingerprint

        Returns:
            CacheEntry if a valid entry exists and caching is enabled, None otherwise
        """
        if not self.enabled:
            return None

        cache_path = self.get_cache_path(key)
        if not cache_path.exists():
            logger.debug(f"Cache MISS: {key}")
            return None

        try:
            with open(cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            predicted = data["pred"]
            elapsed_ms = int(data.get("elapsedMs") or 0)
            if not isinstance(predicted, list):
                raise ValueError("'pred' is not a list")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable cache entry {key}: {e}")
            return None

        logger.debug(f"Cache HIT: {key}")
        return CacheEntry(key=key, predicted=[str(p) for p in predicted], elapsed_ms=elapsed_ms)

    def set(self, key: str, predicted: List[str], elapsed_ms: int) -> None:
        """Store a prediction, overwriting any previous entry.

        Write failures are logged and otherwise ignored.
        """
        if not self.enabled:
            return

        data = {"pred": list(predicted), "elapsedMs": int(elapsed_ms)}
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(self.get_cache_path(key), "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            logger.debug(f"Cache SET: {key} ({len(data['pred'])} answers)")
        except OSError as e:
            logger.error(f"Failed to write cache entry {key}: {e}")

    def save_raw(self, key: str, raw: Optional[str]) -> Optional[Path]:
        """Store raw model output next to the cache entry.

        Returns:
            Path written, or None when raw saving or caching is disabled
        """
        if not (self.enabled and self.save_raw_enabled):
            return None

        raw_dir = self.cache_dir / "raw"
        raw_path = raw_dir / f"{key}.txt"
        try:
            raw_dir.mkdir(parents=True, exist_ok=True)
            raw_path.write_text(raw or "", encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write raw output {key}: {e}")
            return None
        return raw_path

    def delete(self, key: str) -> bool:
        """Delete a cached entry.

        Returns:
            True if file was deleted, False if it didn't exist
        """
        cache_path = self.get_cache_path(key)
        if cache_path.exists():
            cache_path.unlink()
            logger.debug(f"Cache DELETE: {key}")
            return True
        return False

    def keys(self) -> list[str]:
        """Get all cached keys."""
        if not self.cache_dir.exists():
            return []
        return sorted(path.stem for path in self.cache_dir.glob("*.json"))

    def clear(self) -> int:
        """Delete all cached entries.

        Returns:
            Number of files deleted
        """
        count = 0
        for key in self.keys():
            self.get_cache_path(key).unlink()
            count += 1
        logger.info(f"Cleared {count} cached predictions")
        return count
