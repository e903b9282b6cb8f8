"""Fetch functions for raw datasets stored as JSON files or served over HTTP(S)."""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests  # type: ignore[import-untyped]

from ..errors import DatasetShapeError, LoadError

logger = logging.getLogger(__name__)

# dataset key -> path relative to the data root
DATASET_PATHS: Dict[str, str] = {
    "parties": "core/parties.json",
    "states": "core/states.json",
    "positions": "core/positions.json",
    "lgas": "core/lgas.json",
    "wards": "core/wards.json",
    "pollingUnits": "core/polling-units.json",
    "politicians": "politicians/politicians.json",
    "topic-trends": "analytics/topic-trends.json",
}

# dataset key -> name of the record array inside the payload
ROOT_KEYS: Dict[str, str] = {
    "parties": "parties",
    "states": "states",
    "positions": "positions",
    "lgas": "lgas",
    "wards": "wards",
    "pollingUnits": "pollingUnits",
    "politicians": "politicians",
    "topic-trends": "topicTrends",
}


def json_file_fetcher(path: Path | str) -> Callable[[], Any]:
    """Return a callable that reads ``path`` (plain or ``.gz`` JSON)."""
    file_path = Path(path)

    def _fetch() -> Any:
        if not file_path.exists():
            raise LoadError(f"File not found: {file_path}")
        try:
            if file_path.suffix == ".gz":
                with gzip.open(file_path, "rt", encoding="utf-8") as f:
                    return json.load(f)
            with file_path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise LoadError(f"Invalid JSON in {file_path}: {e}") from e
        except OSError as e:
            raise LoadError(f"Failed to read {file_path}: {e}") from e

    return _fetch


def url_fetcher(url: str, timeout: float = 30.0) -> Callable[[], Any]:
    """Return a callable that GETs ``url`` and decodes the JSON body."""

    def _fetch() -> Any:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as e:
            raise LoadError(f"Invalid JSON from {url}: {e}") from e

    return _fetch


def extract_records(payload: Any, root_key: str) -> List[Dict[str, Any]]:
    """Return the record array of a raw payload.

    Accepts either a bare list or an object holding the array under
    ``root_key`` (falling back to ``root_key + "s"``).

    Raises:
        DatasetShapeError: If no record array can be found
    """
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict):
        records = payload.get(root_key)
        if records is None:
            records = payload.get(f"{root_key}s")
    else:
        records = None
    if not isinstance(records, list):
        raise DatasetShapeError(
            f"Payload has no '{root_key}' record array", key=root_key
        )
    return [r for r in records if isinstance(r, dict)]


class DatasetCatalog:
    """Maps dataset keys to fetch functions rooted at a directory or base URL."""

    def __init__(
        self,
        data_dir: Path | str = "data",
        base_url: Optional[str] = None,
        paths: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.base_url = base_url.rstrip("/") if base_url else None
        self.paths: Dict[str, str] = dict(DATASET_PATHS)
        self.paths.update(paths or {})
        self.timeout = timeout
        self._overrides: Dict[str, Callable[[], Any]] = {}

    def register(self, key: str, fetch_fn: Callable[[], Any]) -> None:
        """Use ``fetch_fn`` for ``key`` instead of the path-derived fetcher."""
        self._overrides[key] = fetch_fn

    def location(self, key: str) -> str:
        rel = self.paths.get(key, f"{key}.json")
        if self.base_url:
            return f"{self.base_url}/{rel}"
        return str(self.data_dir / rel)

    def fetcher(self, key: str) -> Callable[[], Any]:
        if key in self._overrides:
            return self._overrides[key]
        location = self.location(key)
        if location.startswith(("http://", "https://")):
            return url_fetcher(location, timeout=self.timeout)
        return json_file_fetcher(location)

    def root_key(self, key: str) -> str:
        return ROOT_KEYS.get(key, key)

    def keys(self) -> List[str]:
        return sorted(set(self.paths) | set(self._overrides))
