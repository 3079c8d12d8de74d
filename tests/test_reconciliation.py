"""
Tests for the reconciliation health checker.
"""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

from usage_collector.core.reconciliation import HealthChecker
from usage_collector.storage.models import CollectionState, ParsingState
from usage_collector.storage.state_store import StateStore


class TestHealthChecker:
    """Test each reconciliation check."""

    def setup_method(self):
        """Set up a storage root with one collected log copy."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.storage_root = self.temp_dir / "reports"
        self.date_dir = self.storage_root / "2025-09-03"
        self.date_dir.mkdir(parents=True)
        (self.date_dir / "GitHub Copilot Chat.log").write_text("content", encoding="utf-8")
        (self.date_dir / "GitHub Copilot Chat.log.hashes").write_text("abc\n", encoding="utf-8")
        self.metrics_dir = self.storage_root / "metrics"
        self.state_store = StateStore(self.temp_dir / "state")
        self.checker = HealthChecker(self.state_store, self.storage_root)

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _parsed_before(self):
        self.state_store.save_parsing_state(ParsingState(last_parse=1700000000000))

    def test_fresh_root_is_healthy(self):
        """Test a never-parsed root without metrics is healthy."""
        fresh = self.temp_dir / "fresh"
        fresh.mkdir()

        status = HealthChecker(self.state_store, fresh).perform_health_check()

        assert status.healthy
        assert status.issues == []
        assert not status.needs_recollection
        assert status.metrics_file_count == 0

    def test_deleted_metrics_directory(self):
        """Test losing the metrics directory after a parse gives one issue."""
        self._parsed_before()

        status = self.checker.perform_health_check()

        assert status.issues == ["Metrics directory was deleted"]
        assert status.needs_recollection
        assert not status.healthy

    def test_missing_root_is_recreated(self):
        """Test a deleted report directory is recreated and flagged."""
        shutil.rmtree(self.storage_root)

        status = self.checker.perform_health_check()

        assert self.storage_root.is_dir()
        assert status.issues == ["Logs directory was missing and has been recreated"]
        assert status.needs_recollection

    def test_corrupt_metrics_file_is_deleted(self):
        """Test invalid report files are removed and regeneration is requested."""
        self.metrics_dir.mkdir()
        (self.metrics_dir / "metrics_2025-09-03.json").write_text("[]", encoding="utf-8")
        corrupt = self.metrics_dir / "metrics_2025-09-04.json"
        corrupt.write_text("{not json", encoding="utf-8")

        status = self.checker.perform_health_check()

        assert not corrupt.exists()
        assert status.issues == ["Corrupted metrics file removed: metrics_2025-09-04.json"]
        assert len(status.warnings) == 1
        assert status.needs_recollection
        assert status.metrics_file_count == 1

    def test_all_metrics_files_deleted(self):
        """Test an empty metrics directory after a parse is flagged."""
        self._parsed_before()
        self.metrics_dir.mkdir()

        status = self.checker.perform_health_check()

        assert status.issues == ["All metrics files were deleted"]
        assert status.needs_recollection

    def test_empty_metrics_directory_never_parsed(self):
        """Test an empty metrics directory is fine before any parse."""
        self.metrics_dir.mkdir()

        assert self.checker.perform_health_check().healthy

    def test_corrupt_collection_state_is_reset(self):
        """Test an unreadable collection state is flagged and removed."""
        self.state_store.state_root.mkdir(parents=True)
        self.state_store.collection_state_file.write_text("{oops", encoding="utf-8")

        status = self.checker.perform_health_check()

        assert not self.state_store.collection_state_file.exists()
        assert len(status.issues) == 1
        assert status.issues[0].startswith("Collection state was corrupted")
        assert status.needs_recollection

    def test_corrupt_parsing_state_is_reset(self):
        """Test an unreadable parsing state is flagged and removed."""
        self.state_store.state_root.mkdir(parents=True)
        self.state_store.parsing_state_file.write_text('{"processedFiles": 3}', encoding="utf-8")

        status = self.checker.perform_health_check()

        assert not self.state_store.parsing_state_file.exists()
        assert status.issues[0].startswith("Parsing state was corrupted")

    def test_missing_parsed_files_are_pruned(self):
        """Test entries for rotated-away logs are dropped with a warning only."""
        kept = self.temp_dir / "GitHub Copilot.log"
        kept.write_text("x", encoding="utf-8")
        self.state_store.save_parsing_state(ParsingState(processed_files={
            str(kept): 1,
            str(self.temp_dir / "gone.log"): 10,
        }))

        status = self.checker.perform_health_check()

        assert status.healthy
        assert len(status.warnings) == 1
        assert self.state_store.load_parsing_state().processed_files == {str(kept): 1}

    def test_lost_raw_copies_reset_state(self):
        """Test tracked files with no stored copies reset both states."""
        shutil.rmtree(self.date_dir)
        self.state_store.save_collection_state(CollectionState(
            last_collection=1,
            processed_files={"/logs/GitHub Copilot.log"},
            file_sizes={"/logs/GitHub Copilot.log": 10},
        ))

        status = self.checker.perform_health_check()

        assert status.issues == ["Collected log copies are missing, tracking state has been reset"]
        assert status.needs_recollection
        assert not self.state_store.collection_state_file.exists()

    def test_failing_check_does_not_stop_others(self):
        """Test an error inside one check is recorded and the rest still run."""
        self._parsed_before()
        with patch.object(HealthChecker, "_check_root", side_effect=RuntimeError("boom")):
            status = self.checker.perform_health_check()

        assert "Health check of report directory failed: boom" in status.issues
        assert "Metrics directory was deleted" in status.issues

    def test_file_counts(self):
        """Test log copies are counted without their hash files."""
        status = self.checker.perform_health_check()

        assert status.log_file_count == 1
        assert status.logs_directory == str(self.storage_root)
        assert status.timestamp
