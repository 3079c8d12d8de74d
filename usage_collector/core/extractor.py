"""
Usage event extraction from editor log lines.

Turns one raw log line into zero or one UsageEvent. Most lines in an
editor log are unrelated noise, so a non-match is the normal outcome and
never an error.
"""

import re
from typing import Optional

from usage_collector.storage.models import Identity, SourceKind, UsageEvent


COMPLETION_ACTION = "completion"

COMPLETION_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2}).*"
    r" at <?(?P<served_by>https://[^ >]+)>?"
    r" finished with 200 status after (?P<duration>[0-9.]+)ms"
)

CHAT_REQUEST_TAG = "copilotmd"
CHAT_DELIMITER = "|"
CHAT_SUCCESS_TOKEN = "success"
CHAT_MARKER = f"{CHAT_REQUEST_TAG} {CHAT_DELIMITER} {CHAT_SUCCESS_TOKEN}"

_LINE_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")
_INTEGER_RE = re.compile(r"(\d+)")


def extract_completion_event(line: str, identity: Identity = Identity()) -> Optional[UsageEvent]:
    """Parse a single completion-engine log line.

    Example:
        2025-09-04 23:02:52.279 [info] [fetchCompletions] Request ... at
        https://proxy.example.com/v1/engines/gpt-41/completions finished
        with 200 status after 227.30137500003912ms

    Args:
        line: Raw log line
        identity: Operator identity to stamp on the event

    Returns:
        UsageEvent, or None if the line is not a successful completion
    """
    match = COMPLETION_RE.match(line)
    if not match:
        return None

    try:
        response_time = float(match.group("duration"))
    except ValueError:
        return None

    return UsageEvent(
        date=match.group("date"),
        source=SourceKind.COMPLETION,
        served_by=match.group("served_by"),
        action=COMPLETION_ACTION,
        response_time_ms=response_time,
        name=identity.name,
        company=identity.company,
        team=identity.team,
    )


def extract_chat_event(line: str, identity: Identity = Identity()) -> Optional[UsageEvent]:
    """Parse a single chat-engine log line.

    Example:
        2025-09-03 16:41:26.178 [info] ccreq:ab70e0b0.copilotmd | success |
        gpt-4.1 | 7006ms | [panel/unknown]

    The three pipe-delimited tokens after ``success`` are the serving
    model, the response time and the action, in that order.
    """
    if CHAT_MARKER not in line:
        return None

    date_match = _LINE_DATE_RE.match(line)
    if not date_match:
        return None

    parts = [part.strip() for part in line.split(CHAT_DELIMITER)]
    try:
        idx = parts.index(CHAT_SUCCESS_TOKEN)
    except ValueError:
        return None

    if idx + 3 >= len(parts):
        return None

    served_by, response_time, action = parts[idx + 1:idx + 4]

    time_match = _INTEGER_RE.search(response_time)
    if not time_match:
        return None

    return UsageEvent(
        date=date_match.group(1),
        source=SourceKind.CHAT,
        served_by=served_by,
        action=action,
        response_time_ms=float(time_match.group(1)),
        name=identity.name,
        company=identity.company,
        team=identity.team,
    )


def extract_event(
    line: str,
    source_kind: SourceKind,
    identity: Identity = Identity(),
) -> Optional[UsageEvent]:
    """Extract a usage event from a line of the given source kind.

    Pure function: identical input always yields identical output.
    """
    if source_kind == SourceKind.CHAT:
        return extract_chat_event(line, identity)
    return extract_completion_event(line, identity)
