r"""backend\demandcast\services\io_utils.py

Small file helpers: tabular reads that prefer Parquet over CSV, and an
append-only JSON Lines log used for the approvals audit trail.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

LOGGER = logging.getLogger(__name__)


def prefer_parquet(csv_path: str | Path) -> pd.DataFrame:
    """Load a dataset preferring a sibling ``<name>.parquet`` over the CSV.

    Raises
    ------
    FileNotFoundError
        When neither the Parquet nor the CSV file exists.
    """

    csv_path = Path(csv_path)
    pq_path = csv_path.with_suffix(".parquet")

    if pq_path.exists():
        return pd.read_parquet(pq_path)

    if not csv_path.exists():
        raise FileNotFoundError(f"Dataset not found at {csv_path} (or {pq_path})")
    return pd.read_csv(csv_path)


def table_exists(csv_path: str | Path) -> bool:
    path = Path(csv_path)
    return path.exists() or path.with_suffix(".parquet").exists()


def frame_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Return ``frame`` rows as dictionaries with missing cells mapped to ``None``."""

    cleaned = frame.astype(object).where(pd.notna(frame), None)
    return cleaned.to_dict(orient="records")


# ---------------------------------------------------------------------------
# JSON Lines


def append_jsonl(path: str | Path, event: Dict[str, Any]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(event, separators=(",", ":"), default=str) + "\n")


def read_jsonl(path: str | Path, limit: int = 0) -> List[Dict[str, Any]]:
    """Return the trailing ``limit`` events (all events when ``limit <= 0``)."""

    path = Path(path)
    if not path.exists():
        return []

    events: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                LOGGER.warning("Skipping malformed line in %s", path)
                continue
    if limit <= 0:
        return events
    return events[-limit:]
