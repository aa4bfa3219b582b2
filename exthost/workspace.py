"""Workspace model the activation router observes: open documents, roots, commands, configuration."""

import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlparse

from exthost.events import Disposable, Emitter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDocument:
    uri: str
    language_id: str
    filetype: str

    @property
    def scheme(self) -> str:
        return urlparse(self.uri).scheme or "file"


@dataclass(frozen=True)
class WorkspaceFoldersChange:
    added: list[Path]
    removed: list[Path]


class CommandRegistry:
    """Command names known to the palette, their titles and handlers.

    on_command fires (awaited) before the handler runs, so a lazily activated
    extension can register its handler in time.
    """

    def __init__(self) -> None:
        self.known: set[str] = set()
        self.titles: dict[str, str] = {}
        self._handlers: dict[str, Callable[..., Any]] = {}
        self.on_command: Emitter[str] = Emitter()

    def register(self, name: str, handler: Callable[..., Any]) -> Disposable:
        self.known.add(name)
        self._handlers[name] = handler

        def _remove() -> None:
            if self._handlers.get(name) is handler:
                del self._handlers[name]

        return Disposable(_remove)

    def has(self, name: str) -> bool:
        return name in self._handlers

    async def execute(self, name: str, *args: Any) -> Any:
        await self.on_command.fire_async(name)
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("command %s not found", name)
            return None
        result = handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result


class Configuration:
    """Flat dot-key configuration: contributed defaults overlaid by user values."""

    def __init__(self, user: dict[str, Any] | None = None) -> None:
        self._defaults: dict[str, Any] = {}
        self._user: dict[str, Any] = dict(user or {})
        self.on_did_change: Emitter[str] = Emitter()

    def extend_defaults(self, properties: dict[str, Any]) -> None:
        """properties: key -> default value, as contributed by a package manifest."""
        for key, value in properties.items():
            self._defaults[key] = value
            self.on_did_change.fire(key)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._user:
            return self._user[key]
        if key in self._defaults:
            return self._defaults[key]
        prefix = key + "."
        section = {
            k[len(prefix):]: v
            for source in (self._defaults, self._user)
            for k, v in source.items()
            if k.startswith(prefix)
        }
        return section or default

    def update(self, key: str, value: Any) -> None:
        if value is None:
            self._user.pop(key, None)
        else:
            self._user[key] = value
        self.on_did_change.fire(key)


class Workspace:
    def __init__(
        self,
        version: str,
        root_path: Path | None = None,
        runtime_paths: list[Path] | None = None,
        configuration: Configuration | None = None,
    ) -> None:
        self.version = version
        self.root_path = root_path or Path.cwd()
        self._documents: dict[str, TextDocument] = {}
        self._folders: list[Path] = [self.root_path] if root_path is not None else []
        self._runtime_paths: list[Path] = list(runtime_paths or [])
        self._root_patterns: dict[str, list[str]] = {}
        self.commands = CommandRegistry()
        self.configuration = configuration or Configuration()
        self.on_did_open_text_document: Emitter[TextDocument] = Emitter()
        self.on_did_change_workspace_folders: Emitter[WorkspaceFoldersChange] = Emitter()
        self.on_did_runtime_path_change: Emitter[list[Path]] = Emitter()

    @property
    def documents(self) -> list[TextDocument]:
        return list(self._documents.values())

    @property
    def language_ids(self) -> set[str]:
        return {d.language_id for d in self._documents.values()}

    @property
    def filetypes(self) -> set[str]:
        return {d.filetype for d in self._documents.values()}

    @property
    def workspace_folders(self) -> list[Path]:
        return list(self._folders)

    @property
    def runtime_paths(self) -> list[Path]:
        return list(self._runtime_paths)

    def open_document(
        self, uri: str, language_id: str, filetype: str | None = None
    ) -> TextDocument:
        doc = TextDocument(uri, language_id, filetype or language_id)
        self._documents[uri] = doc
        self.on_did_open_text_document.fire(doc)
        return doc

    def close_document(self, uri: str) -> None:
        self._documents.pop(uri, None)

    def add_workspace_folder(self, folder: Path) -> None:
        if folder in self._folders:
            return
        self._folders.append(folder)
        self.on_did_change_workspace_folders.fire(WorkspaceFoldersChange([folder], []))

    def remove_workspace_folder(self, folder: Path) -> None:
        if folder not in self._folders:
            return
        self._folders.remove(folder)
        self.on_did_change_workspace_folders.fire(WorkspaceFoldersChange([], [folder]))

    def set_runtime_paths(self, paths: list[Path]) -> None:
        added = [p for p in paths if p not in self._runtime_paths]
        self._runtime_paths = list(paths)
        if added:
            self.on_did_runtime_path_change.fire(added)

    def add_root_pattern(self, filetype: str, patterns: list[str]) -> None:
        existing = self._root_patterns.setdefault(filetype, [])
        for pattern in patterns:
            if pattern not in existing:
                existing.append(pattern)

    def get_root_patterns(self, filetype: str) -> list[str]:
        return list(self._root_patterns.get(filetype, []))
