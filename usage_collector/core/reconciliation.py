"""
Reconciliation of persisted reports against tracking state.

Detects deleted or corrupted report data and signals that a full forced
collection is needed. The checker never starts collection itself.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List

from usage_collector.storage.documents import read_json
from usage_collector.storage.models import CollectionState, HealthStatus, ParsingState
from usage_collector.storage.raw_logs import ARCHIVE_SUFFIX, HASHES_SUFFIX
from usage_collector.storage.reports import METRICS_DIR_NAME, list_metric_files
from usage_collector.storage.state_store import StateStore

logger = logging.getLogger(__name__)

DATE_DIR_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Report:
    """Issues and warnings gathered during one pass."""

    def __init__(self):
        self.issues: List[str] = []
        self.warnings: List[str] = []
        self.needs_recollection = False

    def issue(self, message: str, recollect: bool = True) -> None:
        logger.warning("Health issue: %s", message)
        self.issues.append(message)
        if recollect:
            self.needs_recollection = True

    def warning(self, message: str) -> None:
        logger.info("Health warning: %s", message)
        self.warnings.append(message)


class HealthChecker:
    """Verifies the report directory and state documents are consistent."""

    def __init__(
        self,
        state_store: StateStore,
        storage_root: Path,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.state_store = state_store
        self.storage_root = Path(storage_root)
        self._clock = clock

    @property
    def metrics_dir(self) -> Path:
        return self.storage_root / METRICS_DIR_NAME

    def perform_health_check(self) -> HealthStatus:
        """Run every check and summarize the result.

        Each check runs even if an earlier one failed; an unexpected error
        inside a check is recorded as an issue.

        Returns:
            HealthStatus with ``needs_recollection`` set when a forced full
            collection should be run
        """
        report = _Report()
        checks = [
            ("report directory", self._check_root),
            ("collection state", self._check_collection_state),
            ("parsing state", self._check_parsing_state),
            ("metrics directory", self._check_metrics_directory),
            ("metrics files", self._check_metric_files),
            ("parsed file entries", self._prune_missing_parse_entries),
            ("raw log copies", self._check_raw_copies),
        ]
        for name, check in checks:
            try:
                check(report)
            except Exception as e:
                report.issue(f"Health check of {name} failed: {e}")

        metrics_file_count = self._safe_count(lambda: len(list_metric_files(self.metrics_dir)))
        log_file_count = self._safe_count(self._count_log_files)

        status = HealthStatus(
            healthy=not report.issues,
            issues=report.issues,
            warnings=report.warnings,
            needs_recollection=report.needs_recollection,
            metrics_file_count=metrics_file_count,
            log_file_count=log_file_count,
            logs_directory=str(self.storage_root),
            timestamp=self._clock().isoformat(),
        )
        if status.healthy:
            logger.debug("Health check passed (%d metrics files)", metrics_file_count)
        else:
            logger.warning(
                "Health check found %d issue(s), recollection needed: %s",
                len(status.issues),
                status.needs_recollection,
            )
        return status

    def _safe_count(self, counter: Callable[[], int]) -> int:
        try:
            return counter()
        except OSError as e:
            logger.warning("Could not count files under %s: %s", self.storage_root, e)
            return 0

    def _last_parse(self) -> int:
        return self.state_store.load_parsing_state().last_parse

    def _check_root(self, report: _Report) -> None:
        if self.storage_root.is_dir():
            return
        self.storage_root.mkdir(parents=True, exist_ok=True)
        report.issue("Logs directory was missing and has been recreated")

    def _check_collection_state(self, report: _Report) -> None:
        path = self.state_store.collection_state_file
        if not path.exists():
            return
        try:
            CollectionState.from_dict(read_json(path))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError) as e:
            report.issue(f"Collection state was corrupted and has been reset: {e}")
            self.state_store.reset_collection_state()

    def _check_parsing_state(self, report: _Report) -> None:
        path = self.state_store.parsing_state_file
        if not path.exists():
            return
        try:
            ParsingState.from_dict(read_json(path))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError) as e:
            report.issue(f"Parsing state was corrupted and has been reset: {e}")
            self.state_store.reset_parsing_state()

    def _check_metrics_directory(self, report: _Report) -> None:
        if self.metrics_dir.is_dir():
            return
        # Never parsed: nothing to lose yet
        if self._last_parse() > 0:
            report.issue("Metrics directory was deleted")

    def _check_metric_files(self, report: _Report) -> None:
        if not self.metrics_dir.is_dir():
            return

        valid = 0
        for path in list_metric_files(self.metrics_dir):
            try:
                read_json(path)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning("Deleting corrupted metrics file %s: %s", path.name, e)
                path.unlink()
                report.issue(f"Corrupted metrics file removed: {path.name}")
                report.warning(f"{path.name} will be regenerated on the next collection")
                continue
            valid += 1

        if valid == 0 and self._last_parse() > 0:
            report.issue("All metrics files were deleted")

    def _prune_missing_parse_entries(self, report: _Report) -> None:
        state = self.state_store.load_parsing_state()
        missing = [p for p in state.processed_files if not Path(p).exists()]
        if not missing:
            return
        for path in missing:
            del state.processed_files[path]
        self.state_store.save_parsing_state(state)
        report.warning(f"Removed {len(missing)} parsed file entries for logs that no longer exist")

    def _check_raw_copies(self, report: _Report) -> None:
        if self._has_raw_copies():
            return
        collection = self.state_store.load_collection_state()
        parsing = self.state_store.load_parsing_state()
        if not collection.processed_files and not parsing.processed_files:
            return
        report.issue("Collected log copies are missing, tracking state has been reset")
        self.state_store.reset_collection_state()
        self.state_store.reset_parsing_state()

    def _date_dirs(self) -> List[Path]:
        if not self.storage_root.is_dir():
            return []
        return [p for p in self.storage_root.iterdir() if p.is_dir() and DATE_DIR_RE.match(p.name)]

    def _has_raw_copies(self) -> bool:
        if not self.storage_root.is_dir():
            return False
        if self._date_dirs():
            return True
        return any(p.name.endswith(ARCHIVE_SUFFIX) for p in self.storage_root.iterdir())

    def _count_log_files(self) -> int:
        return sum(
            1
            for date_dir in self._date_dirs()
            for p in date_dir.iterdir()
            if p.is_file() and not p.name.endswith(HASHES_SUFFIX)
        )
