"""
Incremental log ingestion pipeline.

Locates editor log files, selects the ones with new content, copies that
content into persistent storage, extracts usage events from the unread
part of each file and merges the aggregated counters into the per-date
reports.

Two cursor sets are kept. The collection cursor is the source file size at
its last scan and decides whether a file needs collecting at all. The
parsing cursor is the number of bytes already run through the extractor.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from .aggregator import aggregate
from .extractor import extract_event
from .organiser import organize_logs_by_date
from usage_collector.locator.files import (
    get_editor_log_directories,
    locate_log_files,
    parse_log_timestamp,
    source_kind_for,
)
from usage_collector.storage.models import (
    CollectionState,
    Identity,
    LogChunk,
    ParsingState,
    UsageEvent,
)
from usage_collector.storage.raw_logs import create_daily_archives, save_to_persistent_storage
from usage_collector.storage.reports import METRICS_DIR_NAME, save_metrics_to_json
from usage_collector.storage.state_store import StateStore

logger = logging.getLogger(__name__)


class CollectionError(Exception):
    """Raised when a user-invoked collection run fails."""


class CollectionStage(Enum):
    """Stages of one ingestion run."""
    IDLE = "idle"
    LOCATING = "locating"
    FILTERING = "filtering"
    READING = "reading"
    EXTRACTING = "extracting"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"


@dataclass
class ParseResult:
    """Outcome of the extraction and persisting stages."""
    total_records: int
    aggregated_metrics: int
    saved_files: List[Path] = field(default_factory=list)


@dataclass
class CollectionResult:
    """Outcome of one collection run."""
    candidate_files: List[Path] = field(default_factory=list)
    new_files: List[Path] = field(default_factory=list)
    copied_lines: int = 0
    parse: Optional[ParseResult] = None
    archives: List[Path] = field(default_factory=list)
    stage: CollectionStage = CollectionStage.IDLE
    skipped: bool = False
    error: Optional[str] = None

    @property
    def total_records(self) -> int:
        return self.parse.total_records if self.parse else 0


def default_locator(directories: Optional[Iterable[Path]] = None) -> Callable[[], List[Path]]:
    """Locator over explicit directories, or the editor's session directories."""
    def locate() -> List[Path]:
        if directories:
            return locate_log_files(get_editor_log_directories(roots=directories) or directories)
        return locate_log_files(get_editor_log_directories())
    return locate


class UsageCollector:
    """Runs ingestion passes against one state store and storage root.

    Not re-entrant: a call made while another pass is in progress returns
    a skipped result without touching any state.
    """

    def __init__(
        self,
        state_store: StateStore,
        storage_root: Path,
        identity: Identity = Identity(),
        locator: Optional[Callable[[], List[Path]]] = None,
        archive_daily: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state_store = state_store
        self.storage_root = Path(storage_root)
        self.identity = identity
        self.locator = locator or default_locator()
        self.archive_daily = archive_daily
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def metrics_dir(self) -> Path:
        return self.storage_root / METRICS_DIR_NAME

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def collect(self, automatic: bool = False, force_all: bool = False) -> CollectionResult:
        """Run one ingestion pass.

        Args:
            automatic: Background run; failures are logged, never raised
            force_all: Bypass file filtering and re-extract every file from
                the start, used to rebuild reports after data loss

        Returns:
            CollectionResult describing what was processed

        Raises:
            CollectionError: If a user-invoked run fails
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Collection already in progress, skipping this run")
            return CollectionResult(skipped=True)

        result = CollectionResult()
        try:
            self._run(result, automatic, force_all)
        except Exception as e:
            result.error = str(e)
            if automatic:
                logger.exception("Automatic collection failed during %s", result.stage.value)
            else:
                logger.error("Error during log collection: %s", e)
                raise CollectionError(f"Failed to collect logs: {e}") from e
        finally:
            self._lock.release()
        return result

    def _run(self, result: CollectionResult, automatic: bool, force_all: bool) -> None:
        collection_state = self.state_store.load_collection_state()

        result.stage = CollectionStage.LOCATING
        result.candidate_files = [Path(p) for p in self.locator()]
        if not result.candidate_files:
            logger.info("No editor log files found")
            result.stage = CollectionStage.IDLE
            return

        result.stage = CollectionStage.FILTERING
        if force_all:
            result.new_files = list(result.candidate_files)
        else:
            result.new_files = self.filter_new_files(result.candidate_files, collection_state)
        logs_by_date: Dict[str, List[LogChunk]] = {}
        if result.new_files:
            if automatic:
                logger.info("Found %d new log files", len(result.new_files))

            result.stage = CollectionStage.READING
            logs_by_date = organize_logs_by_date(
                result.new_files, collection_state, today=self._clock().date()
            )
            failed_paths = self.copy_to_storage(logs_by_date, result)
            self.update_collection_state(
                collection_state,
                [path for path in result.new_files if str(path) not in failed_paths],
            )
        else:
            logger.info(
                "No new logs detected (%d files already processed)",
                len(collection_state.processed_files),
            )

        # All candidates, not only new files: a failed report write leaves
        # parsing cursors behind the collection cursors
        result.parse = self.parse_and_save_metrics(result.candidate_files, result, force_all)

        if self.archive_daily and logs_by_date:
            result.archives = create_daily_archives(logs_by_date.keys(), self.storage_root)

        result.stage = CollectionStage.IDLE

    def filter_new_files(self, log_files: Iterable[Path], state: CollectionState) -> List[Path]:
        """Files that grew, were modified, or are named with a newer timestamp.

        Any one condition is enough.
        """
        selected: List[Path] = []
        for path in log_files:
            path = Path(path)
            try:
                stat = path.stat()
            except OSError as e:
                logger.warning("Skipping unreadable file %s: %s", path, e)
                continue

            last_size = state.file_sizes.get(str(path), 0)
            # Shrinking counts too: the file was truncated or replaced
            size_changed = stat.st_size != last_size
            modified = stat.st_mtime * 1000 > state.last_collection
            named_at = parse_log_timestamp(path.name)
            filename_newer = named_at is not None and named_at.timestamp() * 1000 > state.last_collection

            if size_changed or modified or filename_newer:
                selected.append(path)
        return selected

    def copy_to_storage(self, logs_by_date: Dict[str, List[LogChunk]], result: CollectionResult) -> Set[str]:
        """Append newly read content to the raw copies.

        The copies are an archive only, so a failure here never stops
        extraction. Returns the source paths that were not stored; their
        collection cursors stay where they were so the next run retries.
        """
        try:
            self.storage_root.mkdir(parents=True, exist_ok=True)
            report = save_to_persistent_storage(logs_by_date, self.storage_root)
        except OSError as e:
            logger.warning("Could not store raw log copies in %s: %s", self.storage_root, e)
            return {chunk.path for chunks in logs_by_date.values() for chunk in chunks}
        result.copied_lines = report.total_lines
        return report.failed_paths

    def update_collection_state(self, state: CollectionState, files: Iterable[Path]) -> None:
        """Record collection cursors for processed files and persist them."""
        state.last_collection = self._now_ms()
        for path in files:
            try:
                size = Path(path).stat().st_size
            except OSError as e:
                logger.warning("File vanished before its cursor was recorded %s: %s", path, e)
                continue
            state.processed_files.add(str(path))
            state.file_sizes[str(path)] = size
        self.state_store.save_collection_state(state)

    @staticmethod
    def filter_new_parsed_files(files: Iterable[Path], state: ParsingState) -> List[Path]:
        """Files whose parsing cursor differs from their current size."""
        pending: List[Path] = []
        for path in files:
            try:
                size = Path(path).stat().st_size
            except OSError as e:
                logger.warning("Skipping unreadable file %s: %s", path, e)
                continue
            if size != state.processed_files.get(str(path), 0):
                pending.append(Path(path))
        return pending

    def parse_file_incremental(
        self,
        path: Path,
        state: ParsingState,
        from_start: bool = False,
    ) -> List[UsageEvent]:
        """Extract events from the unread suffix of a file.

        The parsing cursor is set to the full file length read, not to the
        number of bytes advanced in this pass. A cursor past the end of the
        file means it was truncated or replaced, so it is read from 0.

        Raises:
            OSError: If the file cannot be read
        """
        data = Path(path).read_bytes()
        offset = 0 if from_start else state.processed_files.get(str(path), 0)
        if offset > len(data):
            offset = 0

        kind = source_kind_for(path)
        events: List[UsageEvent] = []
        for line in data[offset:].decode("utf-8", errors="replace").split("\n"):
            event = extract_event(line.rstrip("\r"), kind, self.identity)
            if event is not None:
                events.append(event)

        state.processed_files[str(path)] = len(data)
        return events

    def parse_and_save_metrics(
        self,
        files: Iterable[Path],
        result: Optional[CollectionResult] = None,
        force_all: bool = False,
    ) -> Optional[ParseResult]:
        """Extract, aggregate and persist events from new file content.

        Parsing cursors are saved only after the reports are written, so a
        failed write leaves the content to be read again on the next pass.

        Returns:
            ParseResult, or None if no file had unread content
        """
        result = result or CollectionResult()
        parsing_state = self.state_store.load_parsing_state()

        result.stage = CollectionStage.EXTRACTING
        files = list(files)
        pending = [Path(p) for p in files] if force_all else self.filter_new_parsed_files(files, parsing_state)
        if not pending:
            logger.info("No new log entries to parse")
            return None

        events: List[UsageEvent] = []
        per_file: Dict[str, int] = {}
        for path in pending:
            try:
                file_events = self.parse_file_incremental(path, parsing_state, from_start=force_all)
            except OSError as e:
                logger.warning("Could not read %s: %s", path, e)
                continue
            per_file[path.name] = len(file_events)
            events.extend(file_events)

        result.stage = CollectionStage.AGGREGATING
        if not events:
            logger.info("No new log entries found to parse")
            self.state_store.save_parsing_state(parsing_state)
            return ParseResult(total_records=0, aggregated_metrics=0)

        aggregated = aggregate(events)

        result.stage = CollectionStage.PERSISTING
        saved_files = save_metrics_to_json(aggregated, self.metrics_dir)
        parsing_state.last_parse = self._now_ms()
        self.state_store.save_parsing_state(parsing_state)

        logger.info(
            "Parsed %d new log entries, %d unique metrics (%s)",
            len(events),
            len(aggregated),
            ", ".join(f"{name}: {count}" for name, count in per_file.items()),
        )
        return ParseResult(
            total_records=len(events),
            aggregated_metrics=len(aggregated),
            saved_files=saved_files,
        )
