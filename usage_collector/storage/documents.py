"""
JSON document persistence.

Every persisted document is read whole, modified in memory and written
whole. Writes go to a sibling temp file that replaces the target, so a
kill mid-write leaves the previous document in place.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union


PathLike = Union[str, Path]


def read_json(path: PathLike) -> Any:
    """Read and decode a JSON document.

    Raises:
        FileNotFoundError: If the document does not exist
        json.JSONDecodeError: If the content is not valid JSON
    """
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: PathLike, data: Any) -> None:
    """Write a pretty-printed JSON document, replacing any previous one.

    Args:
        path: Destination file; its parent directory must exist
        data: JSON-serializable value
    """
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
