"""ExtensionRecord: one loaded package and its activation cell."""

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Callable

from exthost.errors import ExtensionNotActiveError
from exthost.events import Disposable, dispose_all
from exthost.extensions.context import ExtensionContext
from exthost.extensions.contract import ExtensionKind, ExtensionModule, ExtensionState
from exthost.extensions.manifest import PackageManifest

logger = logging.getLogger(__name__)


class ExtensionRecord:
    """Loaded extension.

    Activation is single-flight: the first activate() creates a shared task,
    concurrent callers await the same task and see the same outcome. A failed
    activation clears the cell so a later call starts over.
    """

    def __init__(
        self,
        ext_id: str,
        kind: ExtensionKind,
        manifest: PackageManifest,
        root: Path | None,
        entry_file: Path | None,
        module_factory: Callable[[], ExtensionModule],
        context_factory: Callable[[list[Disposable]], ExtensionContext],
    ) -> None:
        self.id = ext_id
        self.kind = kind
        self.manifest = manifest
        self.root = root
        self.entry_file = entry_file
        self._module_factory = module_factory
        self._context_factory = context_factory
        self._module: ExtensionModule | None = None
        self._cell: asyncio.Task[Any] | None = None
        self._active = False
        self._exports: Any = None
        self.subscriptions: list[Disposable] = []
        self.activation_count = 0

    @property
    def is_local(self) -> bool:
        return self.kind is not ExtensionKind.GLOBAL

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def state(self) -> ExtensionState:
        if self._active:
            return ExtensionState.ACTIVE
        if self._cell is not None and not self._cell.done():
            return ExtensionState.ACTIVATING
        return ExtensionState.LOADED

    @property
    def exports(self) -> Any:
        if not self._active:
            raise ExtensionNotActiveError(self.id)
        return self._exports

    async def activate(self) -> Any:
        """Run the entry point once; returns exports.

        Returns None when deactivate() abandons the run before it finishes.
        """
        if self._active:
            return self._exports
        if self._cell is None:
            self._cell = asyncio.ensure_future(self._run_activation())
        cell = self._cell
        try:
            return await asyncio.shield(cell)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if cell.cancelled() and (current is None or not current.cancelling()):
                return None
            raise
        finally:
            if (
                self._cell is cell
                and cell.done()
                and (cell.cancelled() or cell.exception() is not None)
            ):
                self._cell = None

    async def _run_activation(self) -> Any:
        if self._module is None:
            self._module = self._module_factory()
        context = self._context_factory(self.subscriptions)
        try:
            result = self._module.activate(context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error("Error on activate extension %s: %s", self.id, e)
            raise
        if self._cell is not asyncio.current_task():
            # deactivated while the entry point ran and it did not honour cancellation
            dispose_all(self.subscriptions)
            return None
        self._exports = result
        self._active = True
        self.activation_count += 1
        return result

    async def deactivate(self) -> None:
        """Teardown hook, then release subscriptions.

        A pending activation is cancelled and whatever it registered so far is
        released. No-op when neither active nor activating.
        """
        cell, self._cell = self._cell, None
        if cell is not None and not cell.done():
            cell.cancel()
            await asyncio.wait([cell])
            dispose_all(self.subscriptions)
            return
        if not self._active:
            return
        self._active = False
        self._exports = None
        hook = getattr(self._module, "deactivate", None)
        if callable(hook):
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception("Error on %s deactivate: %s", self.id, e)
        dispose_all(self.subscriptions)
