"""Module loaders: turn an entry file into an ExtensionModule."""

import importlib.util
import logging
import re
import sys
from pathlib import Path
from typing import Protocol

from exthost.errors import ExtensionLoadError
from exthost.extensions.contract import ExtensionModule

logger = logging.getLogger(__name__)


class ModuleLoader(Protocol):
    def load(self, ext_id: str, entry_file: Path) -> ExtensionModule: ...


class PythonModuleLoader:
    """Imports the entry file as a fresh module; it must define activate(context)."""

    def load(self, ext_id: str, entry_file: Path) -> ExtensionModule:
        if not entry_file.exists():
            raise ExtensionLoadError(f"{entry_file} not found")
        module_name = "exthost_ext_" + re.sub(r"\W", "_", ext_id)
        spec = importlib.util.spec_from_file_location(module_name, entry_file)
        if spec is None or spec.loader is None:
            raise ExtensionLoadError(f"Cannot load {entry_file}")
        mod = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = mod
        try:
            spec.loader.exec_module(mod)
        except Exception as e:
            sys.modules.pop(spec.name, None)
            raise ExtensionLoadError(f"Error on import {entry_file}: {e}") from e
        if not callable(getattr(mod, "activate", None)):
            raise ExtensionLoadError(f"{entry_file} does not define activate(context)")
        logger.debug("loaded module %s from %s", module_name, entry_file)
        return mod  # type: ignore[return-value]
