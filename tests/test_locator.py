"""
Unit tests for editor log file discovery.
"""

import tempfile
from datetime import datetime
from pathlib import Path

import pytest

from usage_collector.locator.files import (
    editor_log_roots,
    find_log_files,
    get_editor_log_directories,
    is_log_file_name,
    locate_log_files,
    parse_log_timestamp,
    source_kind_for,
)
from usage_collector.storage.models import SourceKind


class TestLogFileNames:
    """Test log file name matching and exclusions."""

    @pytest.mark.parametrize("name", [
        "GitHub Copilot.log",
        "GitHub Copilot Chat.log",
        "GitHub Copilot Chat.log.1",
        "GitHub Copilot Chat.log.2",
        "GitHub Copilot backup.old",
        "GitHub Copilot 2025-09-03.txt",
    ])
    def test_accepted_names(self, name):
        """Test assistant log names are accepted."""
        assert is_log_file_name(name)

    @pytest.mark.parametrize("name", [
        "GitHub Copilot Insights.log",
        "GitHub Copilot Tracker.log.1",
        "GitHub Copilot Extension 2025-09-03.log",
        "renderer.log",
        "exthost.log",
    ])
    def test_rejected_names(self, name):
        """Test lookalikes and unrelated logs are rejected."""
        assert not is_log_file_name(name)


class TestDirectories:
    """Test session directory and file discovery."""

    def test_platform_roots(self):
        """Test each platform maps to its editor log roots."""
        home = Path("/home/ada")
        assert editor_log_roots("linux", home, {}) == [
            home / ".config" / "Code" / "logs",
            home / ".config" / "Code - Insiders" / "logs",
        ]
        assert editor_log_roots("darwin", home, {})[0] == (
            home / "Library" / "Application Support" / "Code" / "logs"
        )
        win = editor_log_roots("win32", home, {"APPDATA": "C:/AppData", "LOCALAPPDATA": "C:/Local"})
        assert win == [Path("C:/AppData") / "Code" / "logs", Path("C:/Local") / "Code" / "logs"]
        assert editor_log_roots("sunos5", home, {}) == []

    def test_session_directories_are_found(self):
        """Test only YYYYMMDDTHHMMSS directories are returned."""
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir) / ".config" / "Code" / "logs"
            (root / "20250903T101500").mkdir(parents=True)
            (root / "20250904T080000").mkdir()
            (root / "not-a-session").mkdir()

            sessions = get_editor_log_directories(platform="linux", home=Path(temp_dir), env={})

            assert [p.name for p in sessions] == ["20250903T101500", "20250904T080000"]

    def test_files_are_found_recursively(self):
        """Test nested assistant logs are collected and others ignored."""
        with tempfile.TemporaryDirectory() as temp_dir:
            session = Path(temp_dir) / "20250903T101500"
            exthost = session / "window1" / "exthost" / "GitHub.copilot"
            exthost.mkdir(parents=True)
            (exthost / "GitHub Copilot.log").write_text("x", encoding="utf-8")
            (exthost / "GitHub Copilot Chat.log").write_text("x", encoding="utf-8")
            (session / "window1" / "renderer.log").write_text("x", encoding="utf-8")

            found = find_log_files(session)

            assert sorted(p.name for p in found) == ["GitHub Copilot Chat.log", "GitHub Copilot.log"]
            assert locate_log_files([session, Path(temp_dir) / "missing"]) == found


class TestTimestampsAndKinds:
    """Test file name timestamps and source kinds."""

    def test_session_style_timestamp(self):
        """Test the time and date are both taken from a session file name."""
        name = "10-15-30_SESSION_2025-09-03_GitHub Copilot.log"
        assert parse_log_timestamp(name) == datetime(2025, 9, 3, 10, 15, 30)

    def test_date_only_timestamp(self):
        """Test a bare date in the name gives midnight of that day."""
        assert parse_log_timestamp("GitHub Copilot 2025-09-03.log") == datetime(2025, 9, 3)

    def test_no_timestamp(self):
        """Test names without a date give None."""
        assert parse_log_timestamp("GitHub Copilot.log") is None

    def test_source_kind(self):
        """Test chat logs are identified by name."""
        assert source_kind_for(Path("/x/GitHub Copilot Chat.log")) == SourceKind.CHAT
        assert source_kind_for(Path("/x/GitHub Copilot.log.1")) == SourceKind.COMPLETION
