"""Load evaluation datasets.

A dataset is a JSON array of objects::

    [{"name": "...", "content": "..." | ["...", ...], "query": "...", "truth": ["...", ...]}]

Truth answers are converted to strings once, here, and never deduplicated.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from vibe_search.exceptions import DatasetError

logger = logging.getLogger(__name__)

DEFAULT_DATASET_PATH = Path(__file__).parent / "dataset.sample.json"

# Used when the bundled sample file is missing
INLINE_DATASET: List[Dict[str, Any]] = [
    {
        "name": "Node & Gemini",
        "content": [
            "Node.js docs: https://nodejs.org/en/",
            "Google AI Studio: https://aistudio.google.com/",
            "Generative AI JS: https://github.com/google-gemini/generative-ai-js",
        ],
        "query": "Where can I learn about @google/genai and Node.js?",
        "truth": [
            "https://nodejs.org/en/",
            "https://aistudio.google.com/",
            "https://github.com/google-gemini/generative-ai-js",
        ],
    },
    {
        "name": "Web Dev",
        "content": [
            "MDN Web Docs: https://developer.mozilla.org/",
            "W3C: https://www.w3.org/",
        ],
        "query": "Where are the web standards and docs?",
        "truth": [
            "https://developer.mozilla.org/",
            "https://www.w3.org/",
        ],
    },
]


@dataclass
class DatasetItem:
    """Single named test case."""
    name: str
    content: Union[str, List[str]]
    query: str
    truth: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "DatasetItem":
        """Build an item from a raw dataset record.

        A missing query is kept as an empty string and fails only that
        item at search time.

        Raises:
            DatasetError: If the record is not an object
        """
        if not isinstance(data, dict):
            raise DatasetError(f"Dataset record {index} is not an object")

        content = data.get("content") or ""
        if isinstance(content, list):
            content = [str(part) for part in content]
        else:
            content = str(content)

        return cls(
            name=str(data.get("name") or f"item-{index}"),
            content=content,
            query=str(data.get("query") or ""),
            truth=[str(t) for t in (data.get("truth") or [])],
        )


def parse_dataset(records: Any) -> List[DatasetItem]:
    """Convert a decoded JSON array into dataset items."""
    if not isinstance(records, list):
        raise DatasetError("Dataset must be a JSON array")
    return [DatasetItem.from_dict(record, i) for i, record in enumerate(records)]


def read_records(path: Path | str) -> Any:
    """Read and decode a dataset file without validating its records.

    Raises:
        DatasetError: If the file is missing, unreadable or not valid JSON
    """
    path = Path(path)
    if not path.exists():
        raise DatasetError(f"Dataset not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise DatasetError(f"Failed to read dataset {path}: {e}") from e


def load_dataset(path: Path | str) -> List[DatasetItem]:
    """Load a dataset from a JSON file.

    Args:
        path: Path to the dataset file

    Returns:
        List of DatasetItems in file order

    Raises:
        DatasetError: If the file is missing, unreadable or malformed
    """
    items = parse_dataset(read_records(path))
    logger.info(f"Loaded {len(items)} dataset item(s) from {path}")
    return items


def load_default_dataset(path: Optional[Path | str] = None) -> List[DatasetItem]:
    """Load the bundled sample dataset, or the inline one if it cannot be read.

    Only a missing or undecodable file falls back to the inline dataset;
    a decoded file with malformed records still raises DatasetError.
    """
    path = Path(path) if path is not None else DEFAULT_DATASET_PATH
    try:
        records = read_records(path)
    except DatasetError as e:
        logger.warning(f"{e}; using inline dataset")
        records = INLINE_DATASET

    items = parse_dataset(records)
    logger.info(f"Loaded {len(items)} default dataset item(s)")
    return items
