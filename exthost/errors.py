"""Error taxonomy shared by the installer, downloader and extension registry."""


class ExtensionHostError(Exception):
    """Base exception for all extension host errors."""


class InvalidManifestError(ExtensionHostError):
    """package.json is missing, unreadable, or lacks name/engines."""


class IncompatibleHostError(ExtensionHostError):
    """The host version does not satisfy the extension's engine range."""


class NotCocExtensionError(ExtensionHostError):
    """Package metadata carries no host-engine compatibility declaration."""


class UnsupportedSourceError(ExtensionHostError):
    """Install source URL is not supported (only github.com)."""


class NotFoundError(ExtensionHostError):
    """Registry lookup miss: package or requested version does not exist."""


class DownloadError(ExtensionHostError):
    """Generic download failure (connection, stream or extraction)."""


class HttpStatusError(DownloadError):
    """Non-2xx HTTP response."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"Invalid response from {url}: {status_code}")
        self.url = url
        self.status_code = status_code


class UnsupportedArchiveError(DownloadError):
    """Auto extraction could not decide between tar and zip."""


class InvalidDestinationError(DownloadError):
    """Download destination is relative or exists but is not a directory."""


class DownloadAbortedError(DownloadError):
    """Download cancelled through its cancellation token."""


class SubprocessFailureError(ExtensionHostError):
    """Secondary dependency install exited non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str = "") -> None:
        super().__init__(f"{command} install exited with {exit_code}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class PackageManagerNotFoundError(ExtensionHostError):
    """No npm-compatible executable found on PATH."""


class ExtensionDisabledError(ExtensionHostError):
    """Extension id is in the disabled set."""

    def __init__(self, ext_id: str) -> None:
        super().__init__(f"Extension {ext_id} is disabled!")
        self.ext_id = ext_id


class NotRegisteredError(ExtensionHostError):
    """No record exists for the extension id."""

    def __init__(self, ext_id: str) -> None:
        super().__init__(f"Extension {ext_id} not registered!")
        self.ext_id = ext_id


class MethodNotFoundError(ExtensionHostError):
    """Named export does not exist on an active extension."""

    def __init__(self, ext_id: str, method: str) -> None:
        super().__init__(f"Method {method} not found on extension {ext_id}")
        self.ext_id = ext_id
        self.method = method


class ExtensionNotActiveError(ExtensionHostError):
    """Exports read before the extension was activated."""

    def __init__(self, ext_id: str) -> None:
        super().__init__(f'Invalid access to exports, extension "{ext_id}" not activated')
        self.ext_id = ext_id


class ExtensionLoadError(ExtensionHostError):
    """Entry file could not be materialized into an activatable module."""
