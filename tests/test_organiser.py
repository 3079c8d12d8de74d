"""
Unit tests for date bucketing of collected content.
"""

import os
import tempfile
from datetime import date, datetime
from pathlib import Path

from usage_collector.core.organiser import (
    extract_content_for_date,
    extract_date_from_path,
    extract_dates_from_content,
    file_type,
    organize_logs_by_date,
)
from usage_collector.storage.models import CollectionState


TODAY = date(2025, 9, 10)


class TestDateHelpers:
    """Test date discovery helpers."""

    def test_session_date_from_path(self):
        """Test the session directory name gives the date."""
        path = "/home/u/.config/Code/logs/20250903T101500/window1/exthost/GitHub Copilot.log"
        assert extract_date_from_path(path) == date(2025, 9, 3)
        assert extract_date_from_path("/tmp/GitHub Copilot.log") is None

    def test_content_dates_in_order(self):
        """Test every supported format is recognized once."""
        content = (
            "2025-09-03 10:00:00 start\n"
            "09/04/2025 something\n"
            "2025/09/05 other\n"
            "2025-09-03T11:00:00 again\n"
        )
        assert extract_dates_from_content(content) == [
            date(2025, 9, 3), date(2025, 9, 4), date(2025, 9, 5),
        ]

    def test_invalid_dates_are_skipped(self):
        """Test impossible calendar dates are ignored."""
        assert extract_dates_from_content("2025-13-45 nope") == []

    def test_content_for_date_filters_lines(self):
        """Test only lines mentioning the date are kept."""
        content = "2025-09-03 a\n2025-09-04 b\n09/03/2025 c"
        assert extract_content_for_date(content, date(2025, 9, 3)) == "2025-09-03 a\n09/03/2025 c"

    def test_content_for_date_falls_back_to_all(self):
        """Test content with no matching line is kept whole."""
        assert extract_content_for_date("no dates", date(2025, 9, 3)) == "no dates"

    def test_file_type(self):
        """Test file type classification by name."""
        assert file_type("GitHub Copilot Chat.log") == "chat"
        assert file_type("GitHub Copilot.log") == "copilot"
        assert file_type("other.log") == "other"


class TestOrganizeLogs:
    """Test bucketing of full and incremental reads."""

    def setup_method(self):
        """Set up a session directory."""
        self.temp_dir = tempfile.mkdtemp()
        self.session = Path(self.temp_dir) / "20250903T101500"
        self.session.mkdir()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, content, name="GitHub Copilot.log"):
        path = self.session / name
        path.write_text(content, encoding="utf-8")
        return path

    def test_full_read_uses_session_and_content_dates(self):
        """Test a first read buckets by session date and content dates."""
        path = self._write("2025-09-03 10:00:00 a\n2025-09-04 09:00:00 b\n")

        result = organize_logs_by_date([path], today=TODAY)

        assert sorted(result) == ["2025-09-03", "2025-09-04"]
        assert result["2025-09-03"][0].content == path.read_text(encoding="utf-8")
        assert result["2025-09-04"][0].content == "2025-09-04 09:00:00 b"
        assert result["2025-09-04"][0].name == "GitHub Copilot.log"

    def test_full_read_without_dates_uses_mtime(self):
        """Test a file with no dates anywhere falls back to its mtime."""
        path = Path(self.temp_dir) / "GitHub Copilot.log"
        path.write_text("no dates here", encoding="utf-8")
        mtime = datetime(2025, 8, 1, 12, 0, 0).timestamp()
        os.utime(path, (mtime, mtime))

        result = organize_logs_by_date([path], today=TODAY)

        assert list(result) == ["2025-08-01"]

    def test_incremental_read_goes_to_today(self):
        """Test growth of a known file is bucketed under today only."""
        path = self._write("2025-09-03 10:00:00 old\n")
        state = CollectionState(file_sizes={str(path): path.stat().st_size})
        with open(path, "a", encoding="utf-8") as f:
            f.write("2025-09-04 10:00:00 new\n")

        result = organize_logs_by_date([path], state, today=TODAY)

        assert list(result) == [TODAY.isoformat()]
        assert result[TODAY.isoformat()][0].content == "2025-09-04 10:00:00 new\n"

    def test_unchanged_known_file_is_skipped(self):
        """Test a file with no growth produces nothing."""
        path = self._write("2025-09-03 10:00:00 old\n")
        state = CollectionState(file_sizes={str(path): path.stat().st_size})

        assert organize_logs_by_date([path], state, today=TODAY) == {}

    def test_truncated_file_is_read_in_full(self):
        """Test a cursor beyond the file size restarts from the beginning."""
        path = self._write("2025-09-03 10:00:00 short\n")
        state = CollectionState(file_sizes={str(path): 10_000})

        result = organize_logs_by_date([path], state, today=TODAY)

        assert "2025-09-03" in result
        assert TODAY.isoformat() not in result

    def test_missing_file_is_skipped(self):
        """Test a vanished file does not abort the pass."""
        good = self._write("2025-09-03 10:00:00 a\n")
        missing = self.session / "GitHub Copilot Chat.log"

        result = organize_logs_by_date([missing, good], today=TODAY)

        assert [c.name for c in result["2025-09-03"]] == ["GitHub Copilot.log"]
