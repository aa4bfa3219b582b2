"""Package fetching and installation: downloader, installer, dependency manifest, install queue."""

from exthost.packages.download import CancellationToken, CancellationTokenSource, download
from exthost.packages.install_queue import InstallQueue
from exthost.packages.installer import Installer, InstallInfo, InstallMessage, create_installer_factory

__all__ = [
    "CancellationToken",
    "CancellationTokenSource",
    "InstallInfo",
    "InstallMessage",
    "InstallQueue",
    "Installer",
    "create_installer_factory",
    "download",
]
