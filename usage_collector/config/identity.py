"""
Operator identity persistence.

The identity (name, company, team) is stamped on every usage event. It is
kept in ``user_config.json`` under the state root and mirrored into the
report directory for inspection.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from usage_collector.storage.documents import read_json, write_json
from usage_collector.storage.models import Identity, UNKNOWN

logger = logging.getLogger(__name__)

USER_CONFIG_FILE = "user_config.json"


class IdentityStore:
    """Load and save the operator identity."""

    def __init__(self, state_root: Path, mirror_dir: Optional[Callable[[Identity], Path]] = None):
        """Initialize the store.

        Args:
            state_root: Directory holding ``user_config.json``
            mirror_dir: Callable mapping an identity to the report
                directory its copy is written into
        """
        self.state_root = Path(state_root)
        self._mirror_dir = mirror_dir

    @property
    def config_file(self) -> Path:
        return self.state_root / USER_CONFIG_FILE

    def is_configured(self) -> bool:
        return self.config_file.exists()

    def load(self) -> Identity:
        """Stored identity, or the Unknown identity if none is usable."""
        if not self.config_file.exists():
            return Identity()
        try:
            data = read_json(self.config_file)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Error loading user config: %s", e)
            return Identity()
        if not isinstance(data, dict):
            logger.warning("User config is not a JSON object, using defaults")
            return Identity()
        return Identity(
            name=data.get("userName") or UNKNOWN,
            company=data.get("company") or UNKNOWN,
            team=data.get("team") or UNKNOWN,
        )

    def save(self, name: str, company: str, team: str) -> Identity:
        """Persist a new identity.

        Raises:
            ValueError: If any field is blank
            OSError: If the authoritative file cannot be written
        """
        for label, value in (("name", name), ("company", company), ("team", team)):
            if not value or not value.strip():
                raise ValueError(f"{label} is required and cannot be empty")

        identity = Identity(name=name.strip(), company=company.strip(), team=team.strip())
        data = {
            "userName": identity.name,
            "company": identity.company,
            "team": identity.team,
            "configuredAt": datetime.now(timezone.utc).isoformat(),
        }

        self.state_root.mkdir(parents=True, exist_ok=True)
        write_json(self.config_file, data)
        self._write_mirror(identity, data)
        return identity

    def _write_mirror(self, identity: Identity, data: dict) -> None:
        if self._mirror_dir is None:
            return
        try:
            target = Path(self._mirror_dir(identity))
            target.mkdir(parents=True, exist_ok=True)
            write_json(target / USER_CONFIG_FILE, data)
        except OSError as e:
            logger.warning("Error copying user config to logs directory: %s", e)
