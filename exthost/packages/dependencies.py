"""The managed root's dependency manifest: <root>/package.json {"dependencies": {id: rangeOrUrl}}."""

import logging
from pathlib import Path
from typing import Any

from exthost.errors import InvalidManifestError
from exthost.utils.jsonc import load_file, write_json_atomic

logger = logging.getLogger(__name__)


def read_manifest(path: Path) -> dict[str, Any]:
    """Whole document; {} when the file is absent."""
    if not path.exists():
        return {}
    try:
        data = load_file(path)
    except (ValueError, OSError) as e:
        raise InvalidManifestError(f"Unable to read {path}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidManifestError(f"{path} must contain a JSON object")
    return data


def read_dependencies(path: Path) -> dict[str, str]:
    deps = read_manifest(path).get("dependencies")
    return dict(deps) if isinstance(deps, dict) else {}


def write_dependencies(path: Path, dependencies: dict[str, str]) -> None:
    """Rewrite the dependencies map with sorted keys, keeping other fields."""
    data = read_manifest(path)
    data["dependencies"] = {k: dependencies[k] for k in sorted(dependencies)}
    write_json_atomic(path, data)


def set_dependency(path: Path, ext_id: str, value: str) -> None:
    deps = read_dependencies(path)
    deps[ext_id] = value
    write_dependencies(path, deps)
    logger.debug("dependency %s set to %s in %s", ext_id, value, path)


def remove_dependencies(path: Path, ids: list[str]) -> None:
    deps = read_dependencies(path)
    for ext_id in ids:
        deps.pop(ext_id, None)
    write_dependencies(path, deps)
