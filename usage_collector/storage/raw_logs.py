"""
Raw log copies in persistent storage.

Collected content is appended to ``<root>/<date>/<file-name>`` behind a
timestamp banner. A sibling ``.hashes`` file records one content hash per
appended block so identical content seen again is not appended twice.
"""

import gzip
import hashlib
import io
import logging
import tarfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Set

from .models import LogChunk

logger = logging.getLogger(__name__)

HASHES_SUFFIX = ".hashes"
ARCHIVE_SUFFIX = "_logs.tar.gz"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def content_hash(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def _read_hashes(hash_file: Path) -> List[str]:
    if not hash_file.exists():
        return []
    try:
        return [h for h in hash_file.read_text(encoding="utf-8").split("\n") if h]
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Ignoring unreadable hash file %s: %s", hash_file, e)
        return []


@dataclass
class CopyReport:
    """Outcome of one raw copy pass."""
    lines: Dict[str, Dict[str, int]] = field(default_factory=dict)
    failed_paths: Set[str] = field(default_factory=set)

    @property
    def total_lines(self) -> int:
        return sum(sum(files.values()) for files in self.lines.values())


def save_to_persistent_storage(
    logs_by_date: Mapping[str, Iterable[LogChunk]],
    base_dir: Path,
    timestamp: Callable[[], str] = _utc_timestamp,
) -> CopyReport:
    """Append collected chunks to their daily files.

    Args:
        logs_by_date: Chunks grouped by date key (YYYY-MM-DD)
        base_dir: Storage root
        timestamp: Source of the banner timestamp

    Returns:
        CopyReport with the number of new lines appended per date and file
        name, where zero means the chunk duplicated stored content, and the
        source paths of chunks that could not be written.
    """
    base_dir = Path(base_dir)
    report = CopyReport()

    for date_key, chunks in logs_by_date.items():
        chunks = list(chunks)
        date_dir = base_dir / date_key
        try:
            date_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create %s: %s", date_dir, e)
            report.failed_paths.update(chunk.path for chunk in chunks)
            continue
        report.lines[date_key] = {}

        for chunk in chunks:
            daily_file = date_dir / chunk.name
            hash_file = daily_file.with_name(daily_file.name + HASHES_SUFFIX)
            digest = content_hash(chunk.content)

            if digest in _read_hashes(hash_file):
                report.lines[date_key][chunk.name] = 0
                continue

            try:
                with open(daily_file, "a", encoding="utf-8") as f:
                    f.write(f"\n=== {timestamp()} ===\n{chunk.content}\n")
                with open(hash_file, "a", encoding="utf-8") as f:
                    f.write(f"{digest}\n")
            except OSError as e:
                logger.warning("Could not store %s for %s: %s", chunk.name, date_key, e)
                report.failed_paths.add(chunk.path)
                continue

            report.lines[date_key][chunk.name] = len(chunk.content.split("\n"))

    return report


def build_tar_archive(directory: Path, prefix: str) -> bytes:
    """Pack the regular files of a directory into an uncompressed ustar stream.

    Entries are named ``<prefix>/<file-name>``. Headers are 512 bytes with a
    6-digit octal checksum; content is padded to 512-byte blocks and the
    stream ends with exactly two zero blocks. ``tarfile`` pads the stream to
    a whole record, so the output is cut after the last member.
    """
    buffer = io.BytesIO()
    now = int(time.time())
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as tar:
        for path in sorted(Path(directory).iterdir()):
            if not path.is_file():
                continue
            data = path.read_bytes()
            info = tarfile.TarInfo(name=f"{prefix}/{path.name}")
            info.size = len(data)
            info.mode = 0o644
            info.mtime = now
            tar.addfile(info, io.BytesIO(data))
        end = tar.offset
    return buffer.getvalue()[:end] + tarfile.NUL * (2 * tarfile.BLOCKSIZE)


def create_daily_archives(dates: Iterable[str], base_dir: Path) -> List[Path]:
    """Write ``<date>_logs.tar.gz`` for each existing date directory.

    A date that fails to archive is logged and skipped.
    """
    base_dir = Path(base_dir)
    written: List[Path] = []
    for date_key in dates:
        date_dir = base_dir / date_key
        if not date_dir.is_dir():
            continue
        archive_path = base_dir / f"{date_key}{ARCHIVE_SUFFIX}"
        try:
            archive_path.write_bytes(gzip.compress(build_tar_archive(date_dir, date_key)))
        except (OSError, tarfile.TarError) as e:
            logger.warning("Failed to create archive for %s: %s", date_key, e)
            continue
        written.append(archive_path)
    return written
