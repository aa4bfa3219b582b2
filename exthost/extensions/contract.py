"""Extension protocols and the enums describing a record's provenance and lifecycle.

The registry only sees the ExtensionModule protocol; how the code behind it
is materialized is up to a ModuleLoader.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from exthost.extensions.context import ExtensionContext
    from exthost.extensions.manifest import PackageManifest


@runtime_checkable
class ExtensionModule(Protocol):
    """Activatable capability. May also define deactivate() (sync or async)."""

    def activate(self, context: "ExtensionContext") -> Any:
        """Called once per activation. Returns the exports object (or an awaitable of it)."""


class ExtensionKind(Enum):
    GLOBAL = "global"
    LOCAL = "local"
    SINGLE_FILE = "single_file"
    INTERNAL = "internal"


class ExtensionState(Enum):
    LOADED = "loaded"
    ACTIVATING = "activating"
    ACTIVE = "activated"


@dataclass(frozen=True)
class ExtensionInfo:
    """Listing entry for an installed or discovered package."""

    id: str
    version: str
    description: str
    root: Path
    is_local: bool
    state: str
    manifest: "PackageManifest"
    exotic: bool = False
    uri: str = ""
