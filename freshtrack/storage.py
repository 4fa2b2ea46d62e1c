from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)

FRESHNESS_PREFIXES = ("fresh", "rotten")

# Returned for labels the table has no entry for.
UNKNOWN_ITEM: Dict[str, str] = {
    "storage": "No storage information available for this item",
    "shelf_life": "Unknown",
    "tips": "Store in a cool, dry place and check regularly for signs of spoilage.",
    "spoilage_signs": "Unknown",
}


def normalize_key(item: str) -> str:
    return "_".join(item.strip().lower().replace("-", " ").split())


def split_freshness(label: str) -> Tuple[Optional[str], str]:
    """
    "Rotten_Apple" -> ("rotten", "apple"); "apple" -> (None, "apple").
    """

    key = normalize_key(label)
    head, sep, rest = key.partition("_")
    if sep and rest and head in FRESHNESS_PREFIXES:
        return head, rest
    return None, key


class StorageAdviceTable:
    """
    Static storage / shelf-life advice keyed by item name.
    """

    def __init__(self, records: Dict[str, Dict[str, Any]]):
        self._records = {normalize_key(k): dict(v) for k, v in records.items()}

    @classmethod
    def from_json(cls, path: PathLike) -> "StorageAdviceTable":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Storage data not found: {path}")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid storage data JSON: {path}") from exc
        if not isinstance(payload, dict) or not all(isinstance(v, dict) for v in payload.values()):
            raise ValueError("Storage data must be a JSON object of objects")
        logger.info("Loaded storage advice for %d items from %s", len(payload), path)
        return cls(payload)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, item: str) -> bool:
        return self.find(item) is not None

    def all(self) -> Dict[str, Dict[str, Any]]:
        return {k: dict(v) for k, v in self._records.items()}

    def find(self, item: str) -> Optional[Dict[str, Any]]:
        """
        Record for `item` (an item key or a detector label), or None.
        """

        key = normalize_key(item)
        record = self._records.get(key)
        if record is not None:
            return dict(record)
        _, base = split_freshness(key)
        record = self._records.get(base)
        return dict(record) if record is not None else None

    def lookup(self, label: str) -> Dict[str, Any]:
        """
        Advice for a detector label; never None.

        Unknown labels get the UNKNOWN_ITEM record with `known` set to False.
        """

        freshness, base = split_freshness(label)
        record = self.find(label)
        if record is None:
            record = dict(UNKNOWN_ITEM)
            record["known"] = False
        else:
            record["known"] = True
        record["item"] = base
        record["freshness"] = freshness
        return record
