"""JSON-file key-value store addressed by dot paths (e.g. extension.<id>.disabled)."""

import json
import logging
from pathlib import Path
from typing import Any

from exthost.utils.jsonc import write_json_atomic

logger = logging.getLogger(__name__)


class StateDB:
    """Persistent nested dict. Every mutation rewrites the file atomically."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Unable to read %s: %s", self._path, e)
            return {}

    def fetch(self, key: str) -> Any:
        """Value at dot path, or None."""
        current: Any = self._load()
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def exists(self, key: str) -> bool:
        return self.fetch(key) is not None

    def push(self, key: str, value: Any) -> None:
        """Set value at dot path, creating intermediate objects."""
        data = self._load()
        parts = key.split(".")
        current = data
        for part in parts[:-1]:
            child = current.get(part)
            if not isinstance(child, dict):
                child = {}
                current[part] = child
            current = child
        current[parts[-1]] = value
        write_json_atomic(self._path, data)

    def delete(self, key: str) -> None:
        data = self._load()
        parts = key.split(".")
        current: Any = data
        for part in parts[:-1]:
            if not isinstance(current, dict) or part not in current:
                return
            current = current[part]
        if isinstance(current, dict) and parts[-1] in current:
            del current[parts[-1]]
            write_json_atomic(self._path, data)
