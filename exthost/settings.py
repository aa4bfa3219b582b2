"""Load host settings from config/settings.yaml and fold in environment toggles."""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

_MISSING = object()

_DEFAULTS: dict[str, Any] = {
    "host": {
        # Version extensions' engines.coc ranges are checked against.
        "version": "0.0.82",
    },
    "extensions": {
        "root": "~/.config/exthost/extensions",
        "modules_dir": "node_modules",
        "npm_bin_path": "npm",
        "update_check": "never",  # never | daily | weekly
        "silent_auto_update": True,
        "global_extensions": [],
        "install_concurrency": 3,
        "registry_scope": "coc.nvim",
        "command_settle_delay": 0.5,
        "no_plugins": False,
        "single_file_dir": None,
    },
    "download": {
        "timeout": 10,
    },
    "logging": {
        "file": "logs/exthost.log",
        "level": "INFO",
        "log_to_console": False,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
    },
}

_cached: dict[str, Any] | None = None


def _overlay(target: dict[str, Any], layer: Mapping[str, Any]) -> dict[str, Any]:
    """Fold a YAML layer onto target in place.

    Nested sections combine key by key; a null in the layer keeps the default.
    """
    for key, value in layer.items():
        current = target.get(key)
        if value is None:
            continue
        if isinstance(current, dict) and isinstance(value, Mapping):
            _overlay(current, value)
            continue
        target[key] = value
    return target


def get_default_settings() -> dict[str, Any]:
    """A fresh, independently mutable copy of the built-in defaults."""
    return copy.deepcopy(_DEFAULTS)


def get_setting(settings: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Look up "section.key" style paths; default when any segment is absent."""
    node: Any = settings
    for segment in path.split("."):
        if not isinstance(node, Mapping):
            return default
        node = node.get(segment, _MISSING)
        if node is _MISSING:
            return default
    return node


def reload_settings() -> None:
    """Forget the loaded settings; the next load_settings() reads the file again."""
    global _cached
    _cached = None


def load_settings(config_dir: Path | None = None) -> dict[str, Any]:
    """Defaults merged with config/settings.yaml. Cached until reload_settings()."""
    global _cached
    if _cached is not None:
        return _cached

    if config_dir is None:
        config_dir = Path(__file__).resolve().parent.parent / "config"
    path = config_dir / "settings.yaml"

    result = get_default_settings()
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                _overlay(result, data)
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)

    _cached = result
    return result


def _truthy(value: str) -> bool:
    return value.strip().lower() not in ("", "0", "false", "no", "off")


def apply_env_overrides(
    settings: dict[str, Any], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """EXTHOST_NO_PLUGINS, EXTHOST_SINGLE_FILE_DIR and EXTHOST_DATA_HOME override settings. Mutates settings."""
    env = os.environ if environ is None else environ
    extensions = settings.setdefault("extensions", {})
    if _truthy(env.get("EXTHOST_NO_PLUGINS", "")):
        extensions["no_plugins"] = True
    if env.get("EXTHOST_SINGLE_FILE_DIR"):
        extensions["single_file_dir"] = env["EXTHOST_SINGLE_FILE_DIR"]
    if env.get("EXTHOST_DATA_HOME"):
        extensions["root"] = str(Path(env["EXTHOST_DATA_HOME"]) / "extensions")
    return settings


def extensions_root(settings: dict[str, Any]) -> Path:
    return Path(get_setting(settings, "extensions.root", _DEFAULTS["extensions"]["root"])).expanduser()

