"""ExtensionRegistry: the table of loaded extensions and every lifecycle operation on it.

Owns discovery (dependency manifest + runtime paths + single-file directory),
load/unload, activation, disabled/locked state, and batch install/update
through Installer + InstallQueue.
"""

import asyncio
import inspect
import logging
import os
import re
import shutil
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

import httpx

from exthost.errors import (
    ExtensionDisabledError,
    ExtensionHostError,
    InvalidManifestError,
    MethodNotFoundError,
    NotRegisteredError,
)
from exthost.events import Disposable, Emitter, dispose_all
from exthost.extensions.activation import ActivationRouter
from exthost.extensions.context import ExtensionContext
from exthost.extensions.contract import (
    ExtensionInfo,
    ExtensionKind,
    ExtensionModule,
    ExtensionState,
)
from exthost.extensions.loader import ModuleLoader, PythonModuleLoader
from exthost.extensions.manifest import (
    DEFAULT_MAIN,
    PackageManifest,
    check_directory,
    load_package_json,
    parse_manifest,
)
from exthost.extensions.record import ExtensionRecord
from exthost.host import (
    FileWatcher,
    InstallSurface,
    LogOutputChannel,
    LogWindow,
    NullFileWatcher,
    OutputChannel,
    Window,
)
from exthost.packages.dependencies import read_dependencies, write_dependencies
from exthost.packages.install_queue import InstallQueue
from exthost.packages.installer import Installer, create_installer_factory
from exthost.settings import get_setting
from exthost.storage import Memos, StateDB
from exthost.utils.concurrency import run_concurrent
from exthost.utils.jsonc import load_file
from exthost.workspace import Workspace

logger = logging.getLogger(__name__)

SINGLE_FILE_ENGINE = "^0.0.79"
FORCE_UPDATE_COMMAND = "extensions.forceUpdateAll"

_URL = re.compile(r"^https?:")
_VERSIONED = re.compile(r"(.+)@([^/]+)$")

InstallerFactory = Callable[[str], Callable[[str], Installer]]


class ExtensionRegistry:
    """Constructed once by the host and passed to whoever needs it."""

    def __init__(
        self,
        root: Path,
        workspace: Workspace,
        settings: dict[str, Any] | None = None,
        *,
        window: Window | None = None,
        output: OutputChannel | None = None,
        surface: InstallSurface | None = None,
        watcher: FileWatcher | None = None,
        loader: ModuleLoader | None = None,
        memos: Memos | None = None,
        installer_factory: InstallerFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.root = root
        self.workspace = workspace
        self.settings = settings or {}
        self.modules_dir = root / get_setting(self.settings, "extensions.modules_dir", "node_modules")
        self.manifest_path = root / "package.json"
        self.window = window or LogWindow()
        self.output = output or LogOutputChannel("extensions")
        self._surface = surface
        self._watcher = watcher or NullFileWatcher()
        self._loader = loader or PythonModuleLoader()
        self.db = StateDB(root / "db.json")
        self.memos = memos or Memos(root / "memos.db")
        self._http_client = http_client
        self._installer_factory = installer_factory or self._default_installer_factory
        self._records: dict[str, ExtensionRecord] = {}
        self._disabled: set[str] = set()
        self._schemes: dict[str, dict[str, Any]] = {}
        self._activated = False
        self._disposables: list[Disposable] = []
        self.install_queue: InstallQueue | None = None
        self.on_did_load_extension: Emitter[ExtensionRecord] = Emitter()
        self.on_did_activate_extension: Emitter[ExtensionRecord] = Emitter()
        self.on_did_unload_extension: Emitter[str] = Emitter()
        self.router = ActivationRouter(
            workspace,
            self.window,
            self.output,
            activate=self.activate,
            can_activate=self.can_activate,
            settle_delay=float(get_setting(self.settings, "extensions.command_settle_delay", 0.5)),
        )

    # -- settings ---------------------------------------------------------

    def _setting(self, path: str, default: Any = None) -> Any:
        return get_setting(self.settings, path, default)

    @property
    def npm(self) -> str | None:
        """Configured package manager, else yarnpkg, yarn, npm from PATH."""
        configured = os.path.expandvars(
            os.path.expanduser(self._setting("extensions.npm_bin_path", "npm") or "npm")
        )
        for exe in (configured, "yarnpkg", "yarn", "npm"):
            found = shutil.which(exe)
            if found:
                return found
        self.window.show_message("Can't find npm or yarn in your $PATH", "error")
        return None

    def _default_installer_factory(self, npm: str) -> Callable[[str], Installer]:
        return create_installer_factory(
            npm,
            self.root,
            self.workspace.version,
            modules_dir=self.modules_dir,
            registry_scope=self._setting("extensions.registry_scope", "coc.nvim"),
            timeout=float(self._setting("download.timeout", 10)),
            client=self._http_client,
        )

    # -- root and startup -------------------------------------------------

    def check_root(self) -> bool:
        """Make sure the managed root is a directory with a dependency manifest."""
        try:
            if self.root.is_file():
                logger.info("Trying to delete %s", self.root)
                self.root.unlink()
            self.root.mkdir(parents=True, exist_ok=True)
            if not self.root.is_dir():
                logger.error("Data home %s is not a valid directory", self.root)
                return False
            if not self.manifest_path.exists():
                self.manifest_path.write_text('{"dependencies":{}}', encoding="utf-8")
        except OSError as e:
            logger.error("Unexpected error when check data home: %s", e)
            return False
        return True

    async def init(self) -> None:
        """Restore disabled ids and load every installed and discovered extension."""
        self.check_root()
        stored = self.db.fetch("extension") or {}
        for key, value in stored.items():
            if isinstance(value, dict) and value.get("disabled") is True:
                self._disabled.add(key)
        if self._setting("extensions.no_plugins", False):
            logger.info("Extensions disabled by environment, skip loading")
            return
        stats = self._global_extension_stats()
        stats += self._local_extension_stats([s.id for s in stats])
        for stat in stats:
            if stat.id in self._disabled:
                continue
            kind = ExtensionKind.LOCAL if stat.is_local else ExtensionKind.GLOBAL
            try:
                await self._create_record(stat.root, stat.manifest, kind)
            except Exception as e:
                logger.exception("Error on create %s: %s", stat.root, e)
        await self._load_file_extensions()
        self._disposables.append(
            self.workspace.commands.register(FORCE_UPDATE_COMMAND, self._force_update_all)
        )
        self.workspace.commands.titles[FORCE_UPDATE_COMMAND] = (
            "remove all global extensions and install them"
        )
        self.workspace.on_did_runtime_path_change.event(
            self._on_runtime_paths, self._disposables
        )

    async def _force_update_all(self) -> None:
        removed = await self.clean()
        logger.info("Force update extensions: %s", removed)
        await self.install_extensions(removed)

    async def _on_runtime_paths(self, paths: list[Path]) -> None:
        for path in paths:
            try:
                check_directory(path, self.workspace.version)
            except (ExtensionHostError, OSError):
                continue
            await self.load(path)

    async def activate_extensions(self) -> None:
        """Wire activation events for every record, then ensure and update globals."""
        self._activated = True
        await asyncio.gather(*(self._setup_activation(r) for r in list(self._records.values())))
        names = self._setting("extensions.global_extensions", []) or []
        if names:
            missing = self.filter_global_extensions(list(names))
            if missing:
                await self.install_extensions(missing)
        interval = self._setting("extensions.update_check", "never")
        if interval == "never":
            return
        today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        threshold = today - timedelta(days=0 if interval == "daily" else 7)
        last = self.db.fetch("lastUpdate")
        if last and float(last) > threshold.timestamp() * 1000:
            return
        self.output.append_line("Start auto update...")
        await self.update_extensions(silent=bool(self._setting("extensions.silent_auto_update", True)))

    async def _setup_activation(self, record: ExtensionRecord) -> None:
        try:
            await self.router.setup(record.id, record.manifest.activation_events)
        except Exception as e:
            logger.exception("Error on setup activation of %s: %s", record.id, e)

    # -- queries ----------------------------------------------------------

    def is_disabled(self, ext_id: str) -> bool:
        return ext_id in self._disabled

    def has(self, ext_id: str) -> bool:
        return ext_id in self._records

    def can_activate(self, ext_id: str) -> bool:
        return ext_id not in self._disabled and ext_id in self._records

    def is_activated(self, ext_id: str) -> bool:
        record = self._records.get(ext_id)
        return record is not None and record.is_active

    def get_extension(self, ext_id: str) -> ExtensionRecord | None:
        return self._records.get(ext_id)

    def loaded_extensions(self) -> list[str]:
        return list(self._records)

    @property
    def all(self) -> list[ExtensionRecord]:
        return [r for r in self._records.values() if r.id not in self._disabled]

    def get_extension_state(self, ext_id: str) -> str:
        if ext_id in self._disabled:
            return "disabled"
        record = self._records.get(ext_id)
        if record is None:
            return "unknown"
        return record.state.value

    def get_extension_api(self, ext_id: str) -> Any:
        record = self._records.get(ext_id)
        if record is None or not record.is_active:
            return None
        return record.exports

    def _load_dependencies(self) -> dict[str, str]:
        try:
            return read_dependencies(self.manifest_path)
        except InvalidManifestError as e:
            self.window.show_message(f"Error on parse {self.manifest_path}: {e}", "error")
            return {}

    @property
    def global_extensions(self) -> list[str]:
        return list(self._load_dependencies())

    def _global_extension_stats(self) -> list[ExtensionInfo]:
        result: list[ExtensionInfo] = []
        for key, value in self._load_dependencies().items():
            root = self.modules_dir / key
            try:
                manifest = check_directory(root, self.workspace.version)
            except (ExtensionHostError, OSError) as e:
                self.window.show_message(
                    f"Unable to load global extension at {root}: {e}", "error"
                )
                logger.error("Error on load %s: %s", root, e)
                continue
            exotic = bool(_URL.match(str(value)))
            result.append(
                ExtensionInfo(
                    id=key,
                    version=manifest.version,
                    description=manifest.description,
                    root=root.resolve(),
                    is_local=False,
                    state=self.get_extension_state(key),
                    manifest=manifest,
                    exotic=exotic,
                    uri=re.sub(r"\.git(#master)?$", "", value) if exotic else "",
                )
            )
        return result

    def _local_extension_stats(self, excludes: list[str]) -> list[ExtensionInfo]:
        result: list[ExtensionInfo] = []
        for root in self.workspace.runtime_paths:
            try:
                manifest = check_directory(root, self.workspace.version)
            except (ExtensionHostError, OSError):
                continue
            existing = self._records.get(manifest.name)
            if existing is not None and not existing.is_local:
                logger.info('Extension "%s" in runtime path already loaded.', manifest.name)
                continue
            if manifest.name in excludes:
                logger.info(
                    'Skipped load from "%s", "%s" already global extension.', root, manifest.name
                )
                continue
            result.append(
                ExtensionInfo(
                    id=manifest.name,
                    version=manifest.version,
                    description=manifest.description,
                    root=root,
                    is_local=True,
                    state=self.get_extension_state(manifest.name),
                    manifest=manifest,
                )
            )
        return result

    async def get_extension_states(self) -> list[ExtensionInfo]:
        """Local packages first; a global one is listed only if no local one shares its id."""
        local = self._local_extension_stats([])
        local_ids = {s.id for s in local}
        return local + [s for s in self._global_extension_stats() if s.id not in local_ids]

    def get_missing_extensions(self) -> list[str]:
        """Manifest entries with no directory; URL pins are returned as the URL."""
        missing: list[str] = []
        for key, value in self._load_dependencies().items():
            if not (self.modules_dir / key).exists():
                missing.append(value if str(value).startswith("http") else key)
        return missing

    @staticmethod
    def _extension_name(definition: str) -> str:
        if _URL.match(definition) or "@" not in definition:
            return definition
        return re.sub(r"@[\d.]+$", "", definition)

    def filter_global_extensions(self, names: list[str]) -> list[str]:
        """Definitions from names that still need installing."""
        wanted: dict[str, str] = {}
        for definition in names:
            name = self._extension_name(definition)
            if name:
                wanted[name] = definition
        urls: list[str] = []
        exists: list[str] = []
        for key, value in self._load_dependencies().items():
            if not isinstance(value, str):
                continue
            if (self.modules_dir / key / "package.json").exists():
                exists.append(key)
                if _URL.match(value):
                    urls.append(value)
        for name in list(wanted):
            if name in self._disabled or name in self._records:
                del wanted[name]
            elif (_URL.match(name) and any(u.startswith(name) for u in urls)) or name in exists:
                del wanted[name]
        return list(wanted.values())

    # -- disabled / locked state -----------------------------------------

    def get_locked_list(self) -> list[str]:
        stored = self.db.fetch("extension") or {}
        return [k for k, v in stored.items() if isinstance(v, dict) and v.get("locked") is True]

    def lock_extension(self, ext_id: str, lock: bool | None = None) -> None:
        key = f"extension.{ext_id}.locked"
        if lock is None:
            lock = not self.db.fetch(key)
        if lock:
            self.db.push(key, True)
        else:
            self.db.delete(key)

    async def toggle(self, ext_id: str) -> None:
        """Flip the disabled flag. Disabling unloads; enabling loads from the managed directory."""
        state = self.get_extension_state(ext_id)
        self.db.push(f"extension.{ext_id}.disabled", state != "disabled")
        if state != "disabled":
            self._disabled.add(ext_id)
            self.router.dispose(ext_id)
            await self._unload(ext_id)
        else:
            self._disabled.discard(ext_id)
            folder = self.modules_dir / ext_id
            if folder.exists():
                await self.load(folder)

    # -- load / unload ----------------------------------------------------

    def _kind_for(self, directory: Path) -> ExtensionKind:
        modules = os.path.normpath(self.modules_dir.absolute())
        parent = directory.absolute().parent
        if parent.name.startswith("@"):
            parent = parent.parent
        return ExtensionKind.GLOBAL if os.path.normpath(parent) == modules else ExtensionKind.LOCAL

    async def load(self, directory: Path) -> bool:
        """Load (or hot-reload) the package in directory. Never raises."""
        directory = Path(directory)
        try:
            manifest = load_package_json(directory)
            if self.is_disabled(manifest.name):
                return False
            await self._unload(manifest.name)
            await self._create_record(directory, manifest, self._kind_for(directory))
            return True
        except Exception as e:
            self.window.show_message(f'Error on load extension from "{directory}": {e}', "error")
            logger.exception("Error on load extension from %s: %s", directory, e)
            return False

    async def load_extension_file(self, filepath: Path) -> bool:
        """Load a single .py file as extension "single-<stem>", with an optional <stem>.json sidecar."""
        filepath = Path(filepath)
        name = f"single-{filepath.stem}"
        if self.is_disabled(name):
            return False
        data: dict[str, Any] = {
            "name": name,
            "main": filepath.name,
            "engines": {"coc": SINGLE_FILE_ENGINE},
        }
        try:
            sidecar = filepath.with_name(filepath.stem + ".json")
            if sidecar.is_file():
                extra = load_file(sidecar)
                if isinstance(extra, dict):
                    for attr in ("activationEvents", "contributes"):
                        if extra.get(attr):
                            data[attr] = extra[attr]
            manifest = parse_manifest(data, str(filepath))
            await self._unload(name)
            await self._create_record(
                filepath.parent, manifest, ExtensionKind.SINGLE_FILE, entry_file=filepath
            )
            return True
        except Exception as e:
            self.window.show_message(f'Error on load extension file "{filepath}": {e}', "error")
            logger.exception("Error on load extension file %s: %s", filepath, e)
            return False

    async def _load_file_extensions(self) -> None:
        folder = self._setting("extensions.single_file_dir")
        if not folder:
            return
        folder = Path(folder).expanduser()
        if not folder.is_dir():
            return
        for path in sorted(folder.glob("*.py")):
            await self.load_extension_file(path)

    async def reload(self, ext_id: str) -> None:
        record = self._records.get(ext_id)
        if record is None:
            self.window.show_message(f"Extension {ext_id} not registered", "error")
            return
        if record.kind is ExtensionKind.INTERNAL:
            self.window.show_message(f'Can\'t reload internal extension "{ext_id}"', "warning")
            return
        if record.kind is ExtensionKind.SINGLE_FILE and record.entry_file is not None:
            await self.load_extension_file(record.entry_file)
        elif record.root is not None:
            await self.load(record.root)
        else:
            self.window.show_message(f"Can't reload extension {ext_id}", "warning")

    async def watch_extension(self, ext_id: str) -> None:
        record = self._records.get(ext_id)
        if record is None:
            self.window.show_message(f"extension {ext_id} not found", "error")
            return
        target = record.entry_file if record.kind is ExtensionKind.SINGLE_FILE else record.root
        if target is None:
            self.window.show_message(f"Can't watch extension {ext_id}", "warning")
            return

        async def on_change(_path: Path) -> None:
            await self.reload(ext_id)
            self.window.show_message(f"reloaded {ext_id}")

        self.window.show_message(f"watching {target}")
        self._disposables.append(self._watcher.watch(target, on_change))

    async def _unload(self, ext_id: str) -> None:
        record = self._records.get(ext_id)
        if record is None:
            return
        await record.deactivate()
        self.router.dispose(ext_id)
        del self._records[ext_id]
        self.on_did_unload_extension.fire(ext_id)

    def _build_context(self, record_id: str, root: Path | None) -> Callable[[list[Disposable]], ExtensionContext]:
        def factory(subscriptions: list[Disposable]) -> ExtensionContext:
            return ExtensionContext(
                extension_id=record_id,
                extension_path=root,
                subscriptions=subscriptions,
                global_state=self.memos.create_memento(f"{record_id}|global"),
                workspace_state=self.memos.create_memento(
                    f"{record_id}|{self.workspace.root_path}"
                ),
                storage_path=self.root / f"{record_id}-data",
                logger=logging.getLogger(f"ext.{record_id}"),
                workspace=self.workspace,
                window=self.window,
                get_extension_api=self.get_extension_api,
            )

        return factory

    async def _create_record(
        self,
        root: Path,
        manifest: PackageManifest,
        kind: ExtensionKind,
        entry_file: Path | None = None,
    ) -> ExtensionRecord:
        ext_id = manifest.name
        entry = entry_file or root / (manifest.main or DEFAULT_MAIN)
        record = ExtensionRecord(
            ext_id,
            kind,
            manifest,
            root,
            entry,
            module_factory=lambda: self._loader.load(ext_id, entry),
            context_factory=self._build_context(ext_id, root),
        )
        await self._register(record)
        return record

    async def _register(self, record: ExtensionRecord) -> None:
        self._records[record.id] = record
        self._apply_contributions(record.manifest)
        self.on_did_load_extension.fire(record)
        if self._activated:
            await self._setup_activation(record)

    def _apply_contributions(self, manifest: PackageManifest) -> None:
        defaults = manifest.configuration_defaults()
        if defaults:
            self.workspace.configuration.extend_defaults(defaults)
        contributes = manifest.contributes
        if contributes is None:
            return
        for item in contributes.root_patterns:
            self.workspace.add_root_pattern(item.filetype, item.patterns)
        for cmd in contributes.commands:
            self.workspace.commands.titles[cmd.command] = cmd.title

    async def register_extension(
        self, module: ExtensionModule, manifest: PackageManifest | dict[str, Any]
    ) -> ExtensionRecord:
        """Register a host-provided extension (kind Internal). Activation events apply as usual."""
        if isinstance(manifest, dict):
            manifest = parse_manifest(manifest, "internal extension")
        ext_id = manifest.name
        await self._unload(ext_id)
        record = ExtensionRecord(
            ext_id,
            ExtensionKind.INTERNAL,
            manifest,
            None,
            None,
            module_factory=lambda: module,
            context_factory=self._build_context(ext_id, None),
        )
        self._records[ext_id] = record
        self._apply_contributions(manifest)
        self.on_did_load_extension.fire(record)
        await self._setup_activation(record)
        return record

    @property
    def schemes(self) -> dict[str, dict[str, Any]]:
        return dict(self._schemes)

    def add_scheme_property(self, key: str, definition: dict[str, Any]) -> None:
        self._schemes[key] = definition
        self.workspace.configuration.extend_defaults({key: definition.get("default")})

    # -- activation -------------------------------------------------------

    async def activate(self, ext_id: str) -> bool:
        """Activate (single-flight). Raises ExtensionDisabledError / NotRegisteredError."""
        if ext_id in self._disabled:
            raise ExtensionDisabledError(ext_id)
        record = self._records.get(ext_id)
        if record is None:
            raise NotRegisteredError(ext_id)
        if record.is_active:
            return True
        starter = record.state is not ExtensionState.ACTIVATING
        await record.activate()
        if not record.is_active:
            return False
        if starter:
            self.on_did_activate_extension.fire(record)
        return True

    async def deactivate(self, ext_id: str) -> bool:
        record = self._records.get(ext_id)
        if record is None:
            return False
        await record.deactivate()
        return True

    async def call(self, ext_id: str, method: str, *args: Any) -> Any:
        record = self._records.get(ext_id)
        if record is None:
            raise NotRegisteredError(ext_id)
        if not record.is_active:
            await self.activate(ext_id)
        exports = record.exports
        if isinstance(exports, dict):
            fn = exports.get(method)
        else:
            fn = getattr(exports, method, None)
        if fn is None or not callable(fn):
            raise MethodNotFoundError(ext_id, method)
        result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    # -- install / update / remove ----------------------------------------

    def _new_queue(self, **kwargs: Any) -> InstallQueue:
        queue = InstallQueue(surface=self._surface, **kwargs)
        self.install_queue = queue
        return queue

    async def install_extensions(self, ids: list[str]) -> InstallQueue | None:
        """Install ids concurrently. Each success is loaded; an explicit @version locks the id."""
        if not ids:
            return None
        npm = self.npm
        if not npm:
            return None
        self.check_root()
        ids = list(dict.fromkeys(ids))
        queue = self._new_queue()
        queue.set_extensions(ids)
        create_installer = self._installer_factory(npm)

        async def run(key: str) -> None:
            queue.start_progress([key])
            installer = create_installer(key)
            installer.on_message.event(lambda m: queue.add_message(key, m.text, m.is_progress))
            try:
                name = await installer.install()
            except Exception as e:
                queue.add_message(key, str(e))
                queue.finish_progress(key, False)
                logger.error("Error on install %s: %s", key, e)
                return
            queue.finish_progress(key, True)
            await self.load(self.modules_dir / name)
            if _VERSIONED.match(key):
                self.lock_extension(name, True)

        limit = int(self._setting("extensions.install_concurrency", 3))
        await run_concurrent(ids, run, limit)
        return queue

    async def update_extensions(self, silent: bool = False, sync: bool = False) -> InstallQueue | None:
        """Update every global extension that is neither locked nor disabled."""
        npm = self.npm
        if not npm:
            return None
        skip = set(self.get_locked_list()) | self._disabled
        stats = [s for s in self._global_extension_stats() if s.id not in skip]
        self.db.push("lastUpdate", int(time.time() * 1000))
        if silent:
            self.window.show_message(
                f"Updating extensions, checkout output:///{self.output.name} for details.", "more"
            )
        queue = self._new_queue(is_update=True, is_sync=sync, channel=self.output if silent else None)
        queue.set_extensions([s.id for s in stats])
        create_installer = self._installer_factory(npm)

        async def run(stat: ExtensionInfo) -> None:
            queue.start_progress([stat.id])
            installer = create_installer(stat.id)
            installer.on_message.event(
                lambda m: queue.add_message(stat.id, m.text, m.is_progress)
            )
            try:
                directory = await installer.update(stat.uri if stat.exotic else None)
            except Exception as e:
                queue.add_message(stat.id, str(e))
                queue.finish_progress(stat.id, False)
                logger.error("Error on update %s: %s", stat.id, e)
                return
            queue.finish_progress(stat.id, True)
            if directory is not None:
                await self.load(directory)

        limit = 1 if silent else int(self._setting("extensions.install_concurrency", 3))
        await run_concurrent(stats, run, limit)
        return queue

    async def uninstall(self, ids: list[str]) -> list[str]:
        """Remove global extensions; ids not in the dependency manifest are reported and skipped."""
        if not ids:
            return []
        known = set(self.global_extensions)
        valid = [i for i in ids if i in known]
        skipped = [i for i in ids if i not in known]
        if skipped:
            self.window.show_message(
                f"Extensions {', '.join(skipped)} not global extensions, can't uninstall!",
                "warning",
            )
        try:
            deps = read_dependencies(self.manifest_path)
            for ext_id in valid:
                await self._unload(ext_id)
                deps.pop(ext_id, None)
                folder = self.modules_dir / ext_id
                if folder.is_symlink() or folder.is_file():
                    folder.unlink()
                elif folder.is_dir():
                    shutil.rmtree(folder)
            write_dependencies(self.manifest_path, deps)
        except (ExtensionHostError, OSError) as e:
            logger.exception("Uninstall failed: %s", e)
            self.window.show_message(f"Uninstall failed: {e}", "error")
            return []
        if valid:
            self.window.show_message(f"Removed: {' '.join(valid)}")
        return valid

    async def clean(self) -> list[str]:
        """Unload and delete every global extension installed as a real directory."""
        if not self.modules_dir.exists():
            return []
        removed: list[str] = []
        for ext_id in self.global_extensions:
            directory = self.modules_dir / ext_id
            if directory.is_symlink() or not directory.is_dir():
                continue
            await self._unload(ext_id)
            shutil.rmtree(directory)
            removed.append(ext_id)
        return removed

    async def dispose(self) -> None:
        dispose_all(self._disposables)
        self.router.dispose_all()
        for ext_id in list(self._records):
            await self._unload(ext_id)
        self.on_did_load_extension.dispose()
        self.on_did_activate_extension.dispose()
        self.on_did_unload_extension.dispose()
        await self.memos.close()
