"""
Data models for storage layer.

Defines usage events, aggregate rows, cursor state documents and the
health status record.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Set


UNKNOWN = "Unknown"
IDE_NAME = "Visual Studio Code"


class SourceKind(Enum):
    """Kind of editor log a usage event was read from."""
    COMPLETION = "completion-engine"
    CHAT = "chat-engine"


@dataclass(frozen=True)
class Identity:
    """Operator identity attached to every usage event."""
    name: str = UNKNOWN
    company: str = UNKNOWN
    team: str = UNKNOWN


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one matched editor interaction.

    Produced by the extractor from a single log line and consumed only by
    the aggregator. Never persisted directly.
    """
    date: str
    source: SourceKind
    served_by: str
    action: str
    response_time_ms: float
    name: str = UNKNOWN
    company: str = UNKNOWN
    team: str = UNKNOWN


@dataclass(frozen=True)
class AggregateKey:
    """Identifies one row in a day's report."""
    date: str
    source: str
    served_by: str
    action: str

    def reduced(self) -> "ReducedKey":
        """Key without the date, used when merging into a date-scoped report."""
        return ReducedKey(self.source, self.served_by, self.action)


@dataclass(frozen=True)
class ReducedKey:
    """Aggregate key with the date component removed."""
    source: str
    served_by: str
    action: str


@dataclass
class AggregateRow:
    """Counters and descriptive fields for one aggregate key."""
    date: str
    source: str
    served_by: str
    action: str
    num_requests: int = 0
    name: str = ""
    company: str = ""
    team: str = ""
    ide: str = IDE_NAME

    @property
    def key(self) -> AggregateKey:
        return AggregateKey(self.date, self.source, self.served_by, self.action)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the report file's field names."""
        return {
            "date": self.date,
            "source": self.source,
            "servedBy": self.served_by,
            "action": self.action,
            "numRequests": self.num_requests,
            "name": self.name,
            "team": self.team,
            "company": self.company,
            "ide": self.ide,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateRow":
        return cls(
            date=data.get("date", ""),
            source=data.get("source", ""),
            served_by=data.get("servedBy", ""),
            action=data.get("action", ""),
            num_requests=int(data.get("numRequests", 0)),
            name=data.get("name", ""),
            company=data.get("company", ""),
            team=data.get("team", ""),
            ide=data.get("ide", IDE_NAME),
        )


@dataclass
class CollectionState:
    """How far raw source files have been collected.

    Owned by the ingestion pipeline. ``file_sizes`` holds the collection
    cursor (byte size at last scan) for each source path.
    """
    last_collection: int = 0
    processed_files: Set[str] = field(default_factory=set)
    file_sizes: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastCollection": self.last_collection,
            "processedFiles": sorted(self.processed_files),
            "fileSizes": dict(self.file_sizes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectionState":
        """Build state from a persisted document.

        Raises:
            ValueError: If the document does not have the expected shape
        """
        if not isinstance(data, dict):
            raise ValueError("collection state must be a JSON object")
        processed = data.get("processedFiles") or []
        sizes = data.get("fileSizes") or {}
        if not isinstance(processed, list) or not isinstance(sizes, dict):
            raise ValueError("collection state has invalid field types")
        return cls(
            last_collection=int(data.get("lastCollection") or 0),
            processed_files=set(processed),
            file_sizes={path: int(size) for path, size in sizes.items()},
        )


@dataclass
class ParsingState:
    """How far each file has been consumed by extraction."""
    processed_files: Dict[str, int] = field(default_factory=dict)
    last_parse: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processedFiles": dict(self.processed_files),
            "lastParse": self.last_parse,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsingState":
        """Build state from a persisted document.

        Raises:
            ValueError: If the document does not have the expected shape
        """
        if not isinstance(data, dict):
            raise ValueError("parsing state must be a JSON object")
        processed = data.get("processedFiles") or {}
        if not isinstance(processed, dict):
            raise ValueError("parsing state has invalid field types")
        return cls(
            processed_files={path: int(size) for path, size in processed.items()},
            last_parse=int(data.get("lastParse") or 0),
        )


@dataclass
class HealthStatus:
    """Outcome of one reconciliation pass."""
    healthy: bool
    issues: List[str]
    warnings: List[str]
    needs_recollection: bool
    metrics_file_count: int
    timestamp: str
    log_file_count: int = 0
    logs_directory: str = ""


@dataclass
class LogChunk:
    """Content read from one source file and assigned to one date bucket."""
    path: str
    name: str
    date: str
    content: str
    kind: str
