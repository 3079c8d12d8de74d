"""
Per-date metrics reports.

Each report file holds every aggregate row for one calendar date. New rows
are merged into the existing file by (source, servedBy, action) and the
file is rewritten whole.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from .documents import read_json, write_json
from .models import AggregateKey, AggregateRow, ReducedKey

logger = logging.getLogger(__name__)

METRICS_DIR_NAME = "metrics"
METRICS_FILE_PREFIX = "metrics_"


class ReportWriteError(Exception):
    """Raised when one or more report dates could not be written."""

    def __init__(self, message: str, failed_dates: List[str], saved_files: List[Path]):
        super().__init__(message)
        self.failed_dates = failed_dates
        self.saved_files = saved_files


def metrics_file_name(date: str) -> str:
    return f"{METRICS_FILE_PREFIX}{date}.json"


def _reduced_key(row: Mapping[str, Any]) -> ReducedKey:
    return ReducedKey(row.get("source"), row.get("servedBy"), row.get("action"))


def merge_rows(
    existing: Iterable[Mapping[str, Any]],
    new: Iterable[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """Merge new report rows into existing ones.

    Rows are keyed by (source, servedBy, action). A later row with the same
    key replaces the earlier one; counts are not summed. Each key keeps the
    position of its first appearance.

    Args:
        existing: Rows already persisted for the date
        new: Rows produced by the current run

    Returns:
        Merged list of rows
    """
    merged: Dict[ReducedKey, Dict[str, Any]] = {}
    for row in list(existing) + list(new):
        merged[_reduced_key(row)] = dict(row)
    return list(merged.values())


def load_report(path: Path) -> List[Dict[str, Any]]:
    """Load a report file, treating unreadable content as empty."""
    if not path.exists():
        return []
    try:
        data = read_json(path)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Error reading existing metrics file %s: %s", path.name, e)
        return []
    if not isinstance(data, list):
        logger.warning("Metrics file %s does not hold a list, ignoring it", path.name)
        return []
    return [row for row in data if isinstance(row, dict)]


def group_by_date(aggregated: Mapping[AggregateKey, AggregateRow]) -> Dict[str, List[Dict[str, Any]]]:
    """Split aggregated rows into report buckets keyed by date."""
    by_date: Dict[str, List[Dict[str, Any]]] = {}
    for row in aggregated.values():
        by_date.setdefault(row.date, []).append(row.to_dict())
    return by_date


def save_metrics_to_json(
    aggregated: Mapping[AggregateKey, AggregateRow],
    metrics_dir: Path,
) -> List[Path]:
    """Merge aggregated rows into per-date report files.

    Every date is attempted even if an earlier one fails.

    Args:
        aggregated: Output of the aggregator
        metrics_dir: Directory holding ``metrics_<date>.json`` files

    Returns:
        Paths of the report files written

    Raises:
        ReportWriteError: If any date could not be written
    """
    metrics_dir = Path(metrics_dir)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    saved_files: List[Path] = []
    failed_dates: List[str] = []

    for date, rows in group_by_date(aggregated).items():
        filepath = metrics_dir / metrics_file_name(date)
        merged = merge_rows(load_report(filepath), rows)
        try:
            write_json(filepath, merged)
        except OSError as e:
            logger.error("Failed to write metrics for %s: %s", date, e)
            failed_dates.append(date)
            continue
        saved_files.append(filepath)

    if failed_dates:
        raise ReportWriteError(
            f"Failed to write metrics for {', '.join(failed_dates)}",
            failed_dates=failed_dates,
            saved_files=saved_files,
        )
    return saved_files


def list_metric_files(metrics_dir: Path) -> List[Path]:
    """Report files currently present, sorted by name."""
    if not metrics_dir.is_dir():
        return []
    return sorted(
        p for p in metrics_dir.iterdir()
        if p.is_file() and p.suffix == ".json" and not p.name.startswith(".")
    )
