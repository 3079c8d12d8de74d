"""
Date bucketing of collected log content.

Decides which daily folder(s) newly read source content is copied into.

Incremental reads (the file was collected before and has grown) always go
under today's date. Log rotation timing means the new bytes of a
long-running session file usually belong to the current day, and content
dates in a partial chunk are not reliable.

Full reads use the session date embedded in the path plus every date
mentioned in the content, falling back to the file modification time.
Buckets other than the session date only receive the lines that mention
that date.
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from usage_collector.storage.models import CollectionState, LogChunk

logger = logging.getLogger(__name__)

SESSION_PATH_RE = re.compile(r"(\d{8})T\d{6}")
CONTENT_DATE_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2})[\sT]\d{2}:\d{2}:\d{2}"
    r"|(\d{4}-\d{2}-\d{2})"
    r"|(\d{2}/\d{2}/\d{4})"
    r"|(\d{4}/\d{2}/\d{2})"
)
_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d")


def file_type(file_name: str) -> str:
    lowered = file_name.lower()
    if "chat" in lowered:
        return "chat"
    if "copilot" in lowered:
        return "copilot"
    return "other"


def extract_date_from_path(path: str) -> Optional[date]:
    """Date of the editor session directory (YYYYMMDDTHHMMSS) in a path."""
    match = SESSION_PATH_RE.search(str(path))
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y%m%d").date()
    except ValueError:
        return None


def extract_dates_from_content(content: str) -> List[date]:
    """Distinct calendar dates mentioned in the content, in order of appearance."""
    seen = set()
    dates: List[date] = []
    for match in CONTENT_DATE_RE.finditer(content):
        for text, fmt in zip(match.groups(), _DATE_FORMATS):
            if text is None:
                continue
            try:
                found = datetime.strptime(text, fmt).date()
            except ValueError:
                break
            if found not in seen:
                seen.add(found)
                dates.append(found)
            break
    return dates


def _date_representations(day: date) -> Tuple[str, ...]:
    return (day.isoformat(), day.strftime("%m/%d/%Y"), day.strftime("%Y/%m/%d"))


def extract_content_for_date(content: str, day: date) -> str:
    """Lines mentioning the date, or the whole content if none do."""
    needles = _date_representations(day)
    relevant = [line for line in content.split("\n") if any(n in line for n in needles)]
    return "\n".join(relevant) if relevant else content


def read_range(path: Path, start: int, end: int) -> str:
    """Read bytes [start, end) of a file and decode them as UTF-8."""
    with open(path, "rb") as f:
        f.seek(start)
        data = f.read(max(end - start, 0))
    return data.decode("utf-8", errors="replace")


def organize_logs_by_date(
    log_files: Iterable[Path],
    collection_state: Optional[CollectionState] = None,
    today: Optional[date] = None,
) -> Dict[str, List[LogChunk]]:
    """Read new content of each file and assign it to date buckets.

    Must run before the collection cursors are advanced for this pass.

    Args:
        log_files: Source files selected for collection
        collection_state: Cursors from the previous pass, if any
        today: Bucket for incremental reads, defaults to the current date

    Returns:
        Chunks grouped by date key (YYYY-MM-DD)
    """
    today = today or date.today()
    sizes = collection_state.file_sizes if collection_state else {}
    logs_by_date: Dict[str, List[LogChunk]] = {}

    for file_path in log_files:
        path = Path(file_path)
        session_date: Optional[date] = None
        content_dates: List[date] = []
        try:
            stat = path.stat()
            last_size = sizes.get(str(path), 0)
            if last_size > stat.st_size:
                # Truncated or replaced since the last pass
                last_size = 0

            incremental = last_size > 0
            if incremental:
                if stat.st_size == last_size:
                    continue
                content = read_range(path, last_size, stat.st_size)
                buckets = [today]
            else:
                content = read_range(path, 0, stat.st_size)
                session_date = extract_date_from_path(str(path))
                content_dates = extract_dates_from_content(content)
                buckets = ([session_date] if session_date else []) + content_dates
                if not buckets:
                    buckets = [datetime.fromtimestamp(stat.st_mtime).date()]
        except OSError as e:
            logger.warning("Could not process file %s: %s", path, e)
            continue

        unique = list(dict.fromkeys(buckets))
        for day in unique:
            chunk_content = content
            if not incremental and day != session_date and content_dates:
                chunk_content = extract_content_for_date(content, day)

            logs_by_date.setdefault(day.isoformat(), []).append(LogChunk(
                path=str(path),
                name=path.name,
                date=day.isoformat(),
                content=chunk_content,
                kind=file_type(path.name),
            ))

    return logs_by_date
