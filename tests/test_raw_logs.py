"""
Unit tests for raw log copies and daily archives.
"""

import gzip
import io
import tarfile
import tempfile
from pathlib import Path

from usage_collector.storage.models import LogChunk
from usage_collector.storage.raw_logs import (
    build_tar_archive,
    content_hash,
    create_daily_archives,
    save_to_persistent_storage,
)


def _chunk(content, name="GitHub Copilot Chat.log", date="2025-09-03"):
    return LogChunk(path=f"/logs/{name}", name=name, date=date, content=content, kind="chat")


def _fixed_timestamp():
    return "2025-09-03T12:00:00+00:00"


class TestPersistentStorage:
    """Test appending collected content."""

    def test_content_is_appended_with_banner(self):
        """Test each block is written behind a timestamp banner."""
        with tempfile.TemporaryDirectory() as temp_dir:
            report = save_to_persistent_storage(
                {"2025-09-03": [_chunk("line one\nline two")]},
                temp_dir,
                timestamp=_fixed_timestamp,
            )

            daily = Path(temp_dir, "2025-09-03", "GitHub Copilot Chat.log")
            assert daily.read_text(encoding="utf-8") == (
                "\n=== 2025-09-03T12:00:00+00:00 ===\nline one\nline two\n"
            )
            assert report.lines == {"2025-09-03": {"GitHub Copilot Chat.log": 2}}
            assert report.total_lines == 2
            assert report.failed_paths == set()

    def test_duplicate_content_is_not_appended(self):
        """Test identical content seen twice is stored once."""
        with tempfile.TemporaryDirectory() as temp_dir:
            logs = {"2025-09-03": [_chunk("same content")]}
            save_to_persistent_storage(logs, temp_dir, timestamp=_fixed_timestamp)
            report = save_to_persistent_storage(logs, temp_dir, timestamp=_fixed_timestamp)

            daily = Path(temp_dir, "2025-09-03", "GitHub Copilot Chat.log")
            assert daily.read_text(encoding="utf-8").count("same content") == 1
            assert report.lines["2025-09-03"]["GitHub Copilot Chat.log"] == 0

            hashes = Path(temp_dir, "2025-09-03", "GitHub Copilot Chat.log.hashes")
            assert hashes.read_text(encoding="utf-8") == content_hash("same content") + "\n"

    def test_new_content_is_appended_after_existing(self):
        """Test distinct content accumulates in order."""
        with tempfile.TemporaryDirectory() as temp_dir:
            save_to_persistent_storage({"2025-09-03": [_chunk("first")]}, temp_dir)
            save_to_persistent_storage({"2025-09-03": [_chunk("second")]}, temp_dir)

            text = Path(temp_dir, "2025-09-03", "GitHub Copilot Chat.log").read_text(encoding="utf-8")
            assert text.index("first") < text.index("second")
            assert text.count("=== ") == 2

    def test_unwritable_date_directory_is_skipped(self):
        """Test a date that cannot get a directory does not stop other dates."""
        with tempfile.TemporaryDirectory() as temp_dir:
            Path(temp_dir, "2025-09-03").write_text("not a directory", encoding="utf-8")
            chat = _chunk("blocked")
            completion = _chunk("stored", name="GitHub Copilot.log", date="2025-09-04")

            report = save_to_persistent_storage(
                {"2025-09-03": [chat], "2025-09-04": [completion]},
                temp_dir,
            )

            assert report.failed_paths == {chat.path}
            assert report.lines == {"2025-09-04": {"GitHub Copilot.log": 1}}
            assert Path(temp_dir, "2025-09-04", "GitHub Copilot.log").exists()

    def test_failed_chunk_is_reported(self):
        """Test a chunk whose file cannot be opened is reported, not hashed."""
        with tempfile.TemporaryDirectory() as temp_dir:
            Path(temp_dir, "2025-09-03", "GitHub Copilot Chat.log").mkdir(parents=True)
            chunk = _chunk("content")

            report = save_to_persistent_storage({"2025-09-03": [chunk]}, temp_dir)

            assert report.failed_paths == {chunk.path}
            assert report.lines == {"2025-09-03": {}}
            assert not Path(temp_dir, "2025-09-03", "GitHub Copilot Chat.log.hashes").exists()


class TestArchives:
    """Test daily tar.gz archives."""

    def test_tar_archive_contains_prefixed_files(self):
        """Test the archive is a valid ustar stream of the directory."""
        with tempfile.TemporaryDirectory() as temp_dir:
            directory = Path(temp_dir)
            (directory / "a.log").write_text("alpha", encoding="utf-8")
            (directory / "b.log").write_text("beta" * 300, encoding="utf-8")
            (directory / "nested").mkdir()

            data = build_tar_archive(directory, "2025-09-03")

            assert len(data) % 512 == 0
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
                names = tar.getnames()
                assert names == ["2025-09-03/a.log", "2025-09-03/b.log"]
                assert tar.extractfile("2025-09-03/b.log").read() == b"beta" * 300

    def test_tar_archive_ends_with_two_zero_blocks(self):
        """Test the stream stops right after the last member's padding."""
        with tempfile.TemporaryDirectory() as temp_dir:
            directory = Path(temp_dir)
            (directory / "a.log").write_bytes(b"0123456789")

            data = build_tar_archive(directory, "2025-09-03")

            # One header block, one data block, two end blocks
            assert len(data) == 4 * 512
            assert data[512:522] == b"0123456789"
            assert data[-1024:] == b"\0" * 1024

    def test_daily_archives_are_gzipped(self):
        """Test one gzip archive is written per existing date directory."""
        with tempfile.TemporaryDirectory() as temp_dir:
            save_to_persistent_storage({"2025-09-03": [_chunk("content")]}, temp_dir)

            written = create_daily_archives(["2025-09-03", "2025-09-04"], temp_dir)

            assert [p.name for p in written] == ["2025-09-03_logs.tar.gz"]
            raw = gzip.decompress(written[0].read_bytes())
            with tarfile.open(fileobj=io.BytesIO(raw), mode="r:") as tar:
                assert "2025-09-03/GitHub Copilot Chat.log" in tar.getnames()
