"""
Durable cursor state for collection and parsing.

Two independent documents live under the state root, which is kept apart
from the user-visible report directory so that deleting reports cannot
destroy tracking state. A mirror copy of each document is written into the
report directory purely for inspection.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, Optional

from .documents import read_json, write_json
from .models import CollectionState, ParsingState

logger = logging.getLogger(__name__)

COLLECTION_STATE_FILE = "collection-state.json"
PARSING_STATE_FILE = "parsing_state.json"


class StateStore:
    """Load, save and reset the collection and parsing cursor documents.

    ``load_*`` never raises: a missing, unreadable or malformed document
    yields the default state. ``save_*`` and ``reset_*`` log failures
    instead of propagating them, since lost state is recoverable through
    reconciliation.
    """

    def __init__(self, state_root: Path, mirror_dir: Optional[Callable[[], Optional[Path]]] = None):
        """Initialize the store.

        Args:
            state_root: Directory holding the authoritative documents
            mirror_dir: Callable returning the report directory to mirror
                documents into, or None to disable mirroring
        """
        self.state_root = Path(state_root)
        self._mirror_dir = mirror_dir

    def _ensure_root(self) -> Path:
        self.state_root.mkdir(parents=True, exist_ok=True)
        return self.state_root

    @property
    def collection_state_file(self) -> Path:
        return self.state_root / COLLECTION_STATE_FILE

    @property
    def parsing_state_file(self) -> Path:
        return self.state_root / PARSING_STATE_FILE

    def state_files(self) -> Dict[str, Path]:
        return {
            "collection": self.collection_state_file,
            "parsing": self.parsing_state_file,
        }

    # Collection state

    def load_collection_state(self) -> CollectionState:
        data = self._load_document(self.collection_state_file, "collection")
        if data is None:
            return CollectionState()
        try:
            return CollectionState.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Collection state is malformed, using defaults: %s", e)
            return CollectionState()

    def save_collection_state(self, state: CollectionState) -> None:
        self._save_document(COLLECTION_STATE_FILE, state.to_dict(), "collection")

    def reset_collection_state(self) -> None:
        self._reset_document(self.collection_state_file, "Collection")

    # Parsing state

    def load_parsing_state(self) -> ParsingState:
        data = self._load_document(self.parsing_state_file, "parsing")
        if data is None:
            return ParsingState()
        try:
            return ParsingState.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Parsing state is malformed, using defaults: %s", e)
            return ParsingState()

    def save_parsing_state(self, state: ParsingState) -> None:
        self._save_document(PARSING_STATE_FILE, state.to_dict(), "parsing")

    def reset_parsing_state(self) -> None:
        self._reset_document(self.parsing_state_file, "Parsing")

    # Shared helpers

    def _load_document(self, path: Path, kind: str):
        try:
            return read_json(path)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Error loading %s state, using defaults: %s", kind, e)
            return None

    def _save_document(self, file_name: str, data: dict, kind: str) -> None:
        try:
            write_json(self._ensure_root() / file_name, data)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error saving %s state: %s", kind, e)
            return
        self._write_mirror(file_name, data)

    def _reset_document(self, path: Path, label: str) -> None:
        try:
            if path.exists():
                path.unlink()
                logger.info("%s state reset", label)
        except OSError as e:
            logger.error("Error resetting %s state: %s", label.lower(), e)

    def _write_mirror(self, file_name: str, data: dict) -> None:
        if self._mirror_dir is None:
            return
        try:
            mirror = self._mirror_dir()
            if mirror is None or not Path(mirror).is_dir():
                return
            write_json(Path(mirror) / file_name, data)
        except Exception as e:
            # Inspection copy only; the authoritative document is already written
            logger.debug("Could not mirror %s: %s", file_name, e)
