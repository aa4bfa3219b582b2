"""InstallQueue: per-item status and log for a batch of installs/updates, rendered to a surface."""

import logging
from dataclasses import dataclass, field
from enum import Enum

from exthost.host import InstallSurface, NullInstallSurface, OutputChannel

logger = logging.getLogger(__name__)


class ProgressStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


_SYMBOLS = {
    ProgressStatus.PENDING: "- ",
    ProgressStatus.RUNNING: "* ",
    ProgressStatus.SUCCESS: "✓ ",
    ProgressStatus.FAILED: "✗ ",
}

# Title line plus one blank line precede the entries.
_HEADER_LINES = 2


@dataclass
class ProgressEntry:
    id: str
    status: ProgressStatus = ProgressStatus.PENDING
    messages: list[str] = field(default_factory=list)
    last_is_progress: bool = False


class InstallQueue:
    """In silent mode (channel given) nothing is rendered; log lines go to the channel."""

    def __init__(
        self,
        is_update: bool = False,
        is_sync: bool = False,
        channel: OutputChannel | None = None,
        surface: InstallSurface | None = None,
    ) -> None:
        self.is_update = is_update
        self.is_sync = is_sync
        self._channel = channel
        self._surface = surface or NullInstallSurface()
        self._entries: dict[str, ProgressEntry] = {}

    @property
    def entries(self) -> list[ProgressEntry]:
        return list(self._entries.values())

    def entry(self, ext_id: str) -> ProgressEntry | None:
        return self._entries.get(ext_id)

    @property
    def finished(self) -> bool:
        return all(
            e.status in (ProgressStatus.SUCCESS, ProgressStatus.FAILED)
            for e in self._entries.values()
        )

    def set_extensions(self, ids: list[str]) -> None:
        self._entries = {ext_id: ProgressEntry(ext_id) for ext_id in ids}
        self._render()

    def start_progress(self, ids: list[str]) -> None:
        for ext_id in ids:
            entry = self._entries.setdefault(ext_id, ProgressEntry(ext_id))
            entry.status = ProgressStatus.RUNNING
        self._render()

    def add_message(self, ext_id: str, text: str, is_progress: bool = False) -> None:
        """Append a log line; a progress line replaces the previous progress line."""
        entry = self._entries.get(ext_id)
        if entry is None:
            logger.debug("message for unknown entry %s: %s", ext_id, text)
            return
        if is_progress and entry.last_is_progress and entry.messages:
            entry.messages[-1] = text
        else:
            entry.messages.append(text)
        entry.last_is_progress = is_progress
        if self._channel is not None and not is_progress:
            self._channel.append_line(f"[{ext_id}] {text}")
        self._render()

    def finish_progress(self, ext_id: str, success: bool = True) -> None:
        entry = self._entries.get(ext_id)
        if entry is None:
            return
        entry.status = ProgressStatus.SUCCESS if success else ProgressStatus.FAILED
        entry.last_is_progress = False
        if self._channel is not None:
            verb = "updated" if self.is_update else "installed"
            result = verb if success else "failed"
            self._channel.append_line(f"[{ext_id}] {result}")
        self._render()

    def title(self) -> str:
        action = "Update" if self.is_update else "Install"
        suffix = " (sync)" if self.is_sync else ""
        state = "finished" if self.finished else "running"
        return f"{action} extensions{suffix} - {state}"

    def lines(self) -> list[str]:
        result = [self.title(), ""]
        for entry in self._entries.values():
            last = entry.messages[-1] if entry.messages else ""
            line = f"{_SYMBOLS[entry.status]}{entry.id}"
            result.append(f"{line}  {last}" if last else line)
        return result

    def get_messages(self, line: int) -> list[str]:
        """Log of the entry rendered at 0-based line index; [] for header lines."""
        index = line - _HEADER_LINES
        entries = list(self._entries.values())
        if index < 0 or index >= len(entries):
            return []
        return list(entries[index].messages)

    def cursor_moved(self, line: int) -> None:
        messages = self.get_messages(line)
        if messages:
            self._surface.show_details(messages)

    def _render(self) -> None:
        if self._channel is not None:
            return
        self._surface.render(self.lines())
