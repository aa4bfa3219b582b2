"""ExtensionContext: what an extension receives in activate(). Its only handle on the host."""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from exthost.events import Disposable
from exthost.storage import Memento

if TYPE_CHECKING:
    from exthost.host import Window
    from exthost.workspace import Workspace


class ExtensionContext:
    def __init__(
        self,
        extension_id: str,
        extension_path: Path | None,
        subscriptions: list[Disposable],
        global_state: Memento,
        workspace_state: Memento,
        storage_path: Path,
        logger: logging.Logger,
        workspace: "Workspace",
        window: "Window",
        get_extension_api: Callable[[str], Any],
    ) -> None:
        self.extension_id = extension_id
        self.extension_path = extension_path
        self.subscriptions = subscriptions
        self.global_state = global_state
        self.workspace_state = workspace_state
        self.storage_path = storage_path
        self.logger = logger
        self.workspace = workspace
        self.window = window
        self._get_extension_api = get_extension_api

    def as_absolute_path(self, relative_path: str) -> Path:
        base = self.extension_path or self.storage_path
        return base / relative_path

    def get_extension_api(self, ext_id: str) -> Any:
        """Exports of another active extension, or None."""
        return self._get_extension_api(ext_id)

    def register_command(self, name: str, handler: Callable[..., Any]) -> Disposable:
        """Register a command handler owned by this extension (released on deactivate)."""
        disposable = self.workspace.commands.register(name, handler)
        self.subscriptions.append(disposable)
        return disposable
