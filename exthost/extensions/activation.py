"""ActivationRouter: turns declared activation events into one-shot activation triggers."""

import asyncio
import logging
import traceback
from pathlib import Path
from typing import Any, Awaitable, Callable

from exthost.events import Disposable, dispose_all
from exthost.host import OutputChannel, Window
from exthost.workspace import TextDocument, Workspace, WorkspaceFoldersChange

logger = logging.getLogger(__name__)


def folder_contains(folder: Path, pattern: str) -> bool:
    """True when a file under folder matches the glob pattern."""
    try:
        return any(p.is_file() for p in folder.glob(pattern))
    except (ValueError, OSError, NotImplementedError) as e:
        logger.debug("glob %s in %s failed: %s", pattern, folder, e)
        return False


class ActivationRouter:
    """Wires triggers per extension id.

    Every trigger of an id shares one "called" flag: the first one to match
    disposes all of them and activates. dispose(id) drops triggers that
    never fired.
    """

    def __init__(
        self,
        workspace: Workspace,
        window: Window,
        output: OutputChannel,
        activate: Callable[[str], Awaitable[Any]],
        can_activate: Callable[[str], bool],
        settle_delay: float = 0.5,
    ) -> None:
        self._workspace = workspace
        self._window = window
        self._output = output
        self._activate = activate
        self._can_activate = can_activate
        self._settle_delay = settle_delay
        self._triggers: dict[str, list[Disposable]] = {}

    def pending(self, ext_id: str) -> int:
        return len(self._triggers.get(ext_id, []))

    def dispose(self, ext_id: str) -> None:
        dispose_all(self._triggers.pop(ext_id, []))

    def dispose_all(self) -> None:
        for ext_id in list(self._triggers):
            self.dispose(ext_id)

    async def _activate_reporting(self, ext_id: str) -> None:
        try:
            await self._activate(ext_id)
        except Exception as e:
            logger.exception("Error on activate extension %s: %s", ext_id, e)
            self._window.show_message(f"Error on activate extension {ext_id}: {e}", "error")
            self._output.append_line(
                f"Error on activate extension {ext_id}: {e}\n{traceback.format_exc()}"
            )

    async def setup(self, ext_id: str, events: list[str] | None) -> None:
        if not self._can_activate(ext_id):
            return
        self.dispose(ext_id)
        if not events or "*" in events:
            await self._activate_reporting(ext_id)
            return

        disposables: list[Disposable] = []
        self._triggers[ext_id] = disposables
        called = False

        async def fire() -> None:
            nonlocal called
            if called:
                return
            called = True
            dispose_all(disposables)
            if self._triggers.get(ext_id) is disposables:
                del self._triggers[ext_id]
            if not self._can_activate(ext_id):
                self._output.append_line(f"Extension {ext_id} is disabled or not loaded.")
                return
            await self._activate_reporting(ext_id)

        workspace = self._workspace
        for event in events:
            kind, _, arg = event.partition(":")
            if kind == "onLanguage":
                if arg in workspace.language_ids or arg in workspace.filetypes:
                    await fire()
                    return
                workspace.on_did_open_text_document.event(
                    self._on_language(arg, fire), disposables
                )
            elif kind == "onCommand":
                workspace.commands.known.add(arg)
                workspace.commands.on_command.event(self._on_command(arg, fire), disposables)
            elif kind == "workspaceContains":
                check = self._workspace_contains(arg.split(), fire)
                workspace.on_did_change_workspace_folders.event(check, disposables)
                if await check(None):
                    return
            elif kind == "onFileSystem":
                if any(doc.scheme == arg for doc in workspace.documents):
                    await fire()
                    return
                workspace.on_did_open_text_document.event(
                    self._on_file_system(arg, fire), disposables
                )
            else:
                logger.warning("Unsupported event %s of %s", event, ext_id)
                self._window.show_message(f"Unsupported event {event} of {ext_id}", "warning")

    @staticmethod
    def _on_language(
        language: str, fire: Callable[[], Awaitable[None]]
    ) -> Callable[[TextDocument], Any]:
        def listener(doc: TextDocument) -> Any:
            if doc.language_id == language or doc.filetype == language:
                return fire()
            return None

        return listener

    @staticmethod
    def _on_file_system(
        scheme: str, fire: Callable[[], Awaitable[None]]
    ) -> Callable[[TextDocument], Any]:
        def listener(doc: TextDocument) -> Any:
            if doc.scheme == scheme:
                return fire()
            return None

        return listener

    def _on_command(
        self, command: str, fire: Callable[[], Awaitable[None]]
    ) -> Callable[[str], Awaitable[None]]:
        async def listener(name: str) -> None:
            if name == command:
                await fire()
                await asyncio.sleep(self._settle_delay)

        return listener

    def _workspace_contains(
        self, patterns: list[str], fire: Callable[[], Awaitable[None]]
    ) -> Callable[[WorkspaceFoldersChange | None], Awaitable[bool]]:
        async def check(_change: WorkspaceFoldersChange | None) -> bool:
            for folder in self._workspace.workspace_folders:
                for pattern in patterns:
                    if await asyncio.to_thread(folder_contains, folder, pattern):
                        await fire()
                        return True
            return False

        return check
