"""Tests for InstallQueue rendering and channel mode."""

from exthost.host import LogOutputChannel, NullInstallSurface
from exthost.packages.install_queue import InstallQueue, ProgressStatus


class TestRendering:
    def test_lines_follow_status(self) -> None:
        surface = NullInstallSurface()
        queue = InstallQueue(surface=surface)
        queue.set_extensions(["a", "b", "c"])
        queue.start_progress(["a", "b"])
        queue.add_message("a", "Downloading")
        queue.finish_progress("a", True)
        queue.finish_progress("b", False)

        assert surface.last == [
            "Install extensions - running",
            "",
            "✓ a  Downloading",
            "✗ b",
            "- c",
        ]

    def test_finished_title(self) -> None:
        queue = InstallQueue(is_update=True, is_sync=True)
        queue.set_extensions(["a"])
        queue.start_progress(["a"])
        assert queue.lines()[2] == "* a"
        queue.finish_progress("a")
        assert queue.finished
        assert queue.title() == "Update extensions (sync) - finished"

    def test_progress_line_replaced(self) -> None:
        queue = InstallQueue()
        queue.set_extensions(["a"])
        queue.add_message("a", "Download progress 10.0%", True)
        queue.add_message("a", "Download progress 55.5%", True)
        queue.add_message("a", "Extracted")
        queue.add_message("a", "[npm] line", True)
        assert queue.entry("a").messages == [
            "Download progress 55.5%",
            "Extracted",
            "[npm] line",
        ]

    def test_unknown_entry_ignored(self) -> None:
        queue = InstallQueue()
        queue.set_extensions(["a"])
        queue.add_message("zzz", "hello")
        queue.finish_progress("zzz")
        assert [e.id for e in queue.entries] == ["a"]


class TestDetails:
    def test_messages_by_line(self) -> None:
        surface = NullInstallSurface()
        queue = InstallQueue(surface=surface)
        queue.set_extensions(["a", "b"])
        queue.add_message("b", "one")
        queue.add_message("b", "two")

        assert queue.get_messages(0) == []
        assert queue.get_messages(1) == []
        assert queue.get_messages(2) == []
        assert queue.get_messages(3) == ["one", "two"]
        assert queue.get_messages(9) == []

        queue.cursor_moved(3)
        assert surface.details == ["one", "two"]


class TestChannelMode:
    def test_lines_go_to_channel(self) -> None:
        channel = LogOutputChannel("extensions")
        surface = NullInstallSurface()
        queue = InstallQueue(is_update=True, channel=channel, surface=surface)
        queue.set_extensions(["a", "b"])
        queue.start_progress(["a", "b"])
        queue.add_message("a", "Download progress 50.0%", True)
        queue.add_message("a", "Updated to v2.0.0")
        queue.finish_progress("a")
        queue.finish_progress("b", False)

        assert channel.lines == ["[a] Updated to v2.0.0", "[a] updated", "[b] failed"]
        assert surface.last == []
        assert queue.entry("b").status is ProgressStatus.FAILED
