"""Host collaborators the runtime talks to: message window, output channel, install surface, file watcher.

Only narrow interfaces live here. The Log* defaults route everything through
logging so the runtime works headless (CLI, tests).
"""

import logging
from pathlib import Path
from typing import Any, Callable, Literal, Protocol, runtime_checkable

from exthost.events import Disposable

logger = logging.getLogger(__name__)

MessageLevel = Literal["more", "warning", "error"]


@runtime_checkable
class Window(Protocol):
    """Short user-visible status messages."""

    def show_message(self, message: str, level: MessageLevel = "more") -> None: ...


@runtime_checkable
class OutputChannel(Protocol):
    """Append-only named log surface."""

    name: str

    def append_line(self, line: str) -> None: ...

    @property
    def lines(self) -> list[str]: ...


@runtime_checkable
class InstallSurface(Protocol):
    """Where an InstallQueue renders its aggregate view."""

    def render(self, lines: list[str]) -> None: ...

    def show_details(self, messages: list[str]) -> None:
        """Log of the entry under the viewer's cursor."""


@runtime_checkable
class FileWatcher(Protocol):
    def watch(self, path: Path, callback: Callable[[Path], Any]) -> Disposable: ...


_LEVELS = {"more": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class LogWindow:
    """Window that logs messages and keeps them for inspection."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def show_message(self, message: str, level: MessageLevel = "more") -> None:
        self.messages.append((message, level))
        logger.log(_LEVELS.get(level, logging.INFO), "%s", message)


class LogOutputChannel:
    def __init__(self, name: str) -> None:
        self.name = name
        self._lines: list[str] = []
        self._logger = logging.getLogger(f"exthost.output.{name}")

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def append_line(self, line: str) -> None:
        self._lines.append(line)
        self._logger.info("%s", line)


class NullInstallSurface:
    """Keeps the last render; used when nothing is attached to display progress."""

    def __init__(self) -> None:
        self.last: list[str] = []
        self.details: list[str] = []

    def render(self, lines: list[str]) -> None:
        self.last = list(lines)

    def show_details(self, messages: list[str]) -> None:
        self.details = list(messages)


class NullFileWatcher:
    def watch(self, path: Path, callback: Callable[[Path], Any]) -> Disposable:
        logger.debug("file watching not available, ignoring %s", path)
        return Disposable()
