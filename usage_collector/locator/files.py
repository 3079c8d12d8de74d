"""
Editor log file discovery.

Enumerates the editor's per-session log directories for the current
platform and finds the assistant log files inside them, excluding
third-party extension logs with lookalike names.
"""

import logging
import os
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from usage_collector.storage.models import SourceKind

logger = logging.getLogger(__name__)

SESSION_DIR_RE = re.compile(r"^\d{8}T\d{6}$")

LOG_FILE_PATTERNS = [
    re.compile(r"^GitHub Copilot( Chat)?\.log(\.\d+)?$", re.IGNORECASE),
    re.compile(r"^GitHub Copilot.*\.log\.\d+$", re.IGNORECASE),
    re.compile(r"^GitHub.*Copilot.*\.old$", re.IGNORECASE),
    re.compile(r"GitHub.*Copilot.*\d{4}-\d{2}-\d{2}", re.IGNORECASE),
]

EXCLUDED_NAME_PARTS = ("insights", "tracker", "extension")
EXCLUDED_NUMBERED_RE = re.compile(r"^\d+-.*copilot.*\.log$", re.IGNORECASE)

FILENAME_TIMESTAMP_PATTERNS = [
    re.compile(r"(\d{2}-\d{2}-\d{2})_SESSION_(\d{4}-\d{2}-\d{2})_GitHub Copilot"),
    re.compile(r"(\d{4}-\d{2}-\d{2}).*copilot", re.IGNORECASE),
    re.compile(r"copilot.*(\d{4}-\d{2}-\d{2})", re.IGNORECASE),
    re.compile(r"GitHub.*Copilot.*(\d{4}-\d{2}-\d{2})", re.IGNORECASE),
]


def editor_log_roots(
    platform: Optional[str] = None,
    home: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> List[Path]:
    """Base log directories of the editor for a platform."""
    platform = platform or sys.platform
    home = Path(home) if home is not None else Path.home()
    env = os.environ if env is None else env

    if platform.startswith("win"):
        appdata = env.get("APPDATA") or str(home / "AppData" / "Roaming")
        local_appdata = env.get("LOCALAPPDATA") or str(home / "AppData" / "Local")
        return [Path(appdata) / "Code" / "logs", Path(local_appdata) / "Code" / "logs"]
    if platform == "darwin":
        support = home / "Library" / "Application Support"
        return [support / "Code" / "logs", support / "Code - Insiders" / "logs"]
    if platform.startswith("linux"):
        config = home / ".config"
        return [config / "Code" / "logs", config / "Code - Insiders" / "logs"]
    return []


def get_editor_log_directories(
    platform: Optional[str] = None,
    home: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    roots: Optional[Iterable[Path]] = None,
) -> List[Path]:
    """Find the editor's session directories (named YYYYMMDDTHHMMSS).

    Args:
        platform: ``sys.platform`` style name, defaults to the running one
        home: Home directory, defaults to the current user's
        env: Environment used for Windows app-data locations
        roots: Explicit base directories, overriding platform discovery
    """
    base_dirs = list(roots) if roots is not None else editor_log_roots(platform, home, env)
    sessions: List[Path] = []
    for base_dir in base_dirs:
        base_dir = Path(base_dir)
        if not base_dir.is_dir():
            continue
        try:
            for entry in sorted(base_dir.iterdir()):
                if entry.is_dir() and SESSION_DIR_RE.match(entry.name):
                    sessions.append(entry)
        except OSError as e:
            logger.warning("Could not read editor logs directory %s: %s", base_dir, e)
    return sessions


def is_log_file_name(name: str) -> bool:
    """Whether a file name is an assistant log and not a lookalike."""
    if not any(p.search(name) for p in LOG_FILE_PATTERNS):
        return False
    lowered = name.lower()
    if any(part in lowered for part in EXCLUDED_NAME_PARTS):
        return False
    if EXCLUDED_NUMBERED_RE.match(name):
        return False
    return True


def find_log_files(directory: Path) -> List[Path]:
    """Recursively collect assistant log files under a directory.

    Entries that cannot be read are skipped.
    """
    found: List[Path] = []
    try:
        entries = sorted(Path(directory).iterdir())
    except OSError as e:
        logger.warning("Could not read directory %s: %s", directory, e)
        return found

    for entry in entries:
        try:
            if entry.is_file():
                if is_log_file_name(entry.name):
                    found.append(entry)
            elif entry.is_dir():
                found.extend(find_log_files(entry))
        except OSError:
            continue
    return found


def locate_log_files(directories: Iterable[Path]) -> List[Path]:
    """Collect log files from every existing directory."""
    files: List[Path] = []
    for directory in directories:
        if Path(directory).is_dir():
            files.extend(find_log_files(Path(directory)))
    return files


def parse_log_timestamp(filename: str) -> Optional[datetime]:
    """Extract a timestamp embedded in a log file name, if any."""
    for pattern in FILENAME_TIMESTAMP_PATTERNS:
        match = pattern.search(filename)
        if not match:
            continue
        groups = match.groups()
        if len(groups) == 2:
            try:
                return datetime.strptime(f"{groups[1]} {groups[0]}", "%Y-%m-%d %H-%M-%S")
            except ValueError:
                pass
        try:
            return datetime.strptime(groups[-1], "%Y-%m-%d")
        except ValueError:
            continue
    return None


def source_kind_for(path: Path) -> SourceKind:
    """Chat logs carry 'Chat' in their file name."""
    return SourceKind.CHAT if "Chat" in Path(path).name else SourceKind.COMPLETION
