"""In-process event channels: subscribe returns a Disposable, fire delivers to listeners.

Listeners may be plain callables or coroutine functions. fire() never blocks on
coroutine listeners (they run as tasks); fire_async() awaits each one in order.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], Any]


class Disposable:
    """Releases a resource once. Further dispose() calls are no-ops."""

    def __init__(self, callback: Callable[[], Any] | None = None) -> None:
        self._callback = callback
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._callback is not None:
            self._callback()
            self._callback = None


def dispose_all(disposables: list[Disposable]) -> None:
    """Dispose every item and empty the list. Failures are logged, not raised."""
    while disposables:
        item = disposables.pop()
        try:
            item.dispose()
        except Exception as e:
            logger.exception("dispose failed: %s", e)


class Emitter(Generic[T]):
    """Typed event channel."""

    def __init__(self) -> None:
        self._listeners: list[Listener[T]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def event(
        self,
        listener: Listener[T],
        disposables: list[Disposable] | None = None,
    ) -> Disposable:
        """Subscribe. The returned Disposable is also appended to disposables if given."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        disposable = Disposable(_remove)
        if disposables is not None:
            disposables.append(disposable)
        return disposable

    def once(
        self,
        listener: Listener[T],
        disposables: list[Disposable] | None = None,
    ) -> Disposable:
        """Subscribe for a single delivery; the subscription disposes itself first."""
        holder: list[Disposable] = []

        def _wrapper(value: T) -> Any:
            holder[0].dispose()
            return listener(value)

        holder.append(self.event(_wrapper, disposables))
        return holder[0]

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def fire(self, value: T) -> None:
        """Deliver to all listeners. Coroutine results are scheduled, not awaited."""
        for listener in list(self._listeners):
            try:
                result = listener(value)
            except Exception as e:
                logger.exception("event listener %r failed: %s", listener, e)
                continue
            if inspect.isawaitable(result):
                self._schedule(result)

    async def fire_async(self, value: T) -> None:
        """Deliver to all listeners, awaiting coroutine listeners one after another."""
        for listener in list(self._listeners):
            try:
                result = listener(value)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception("event listener %r failed: %s", listener, e)

    def _schedule(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("async event listener failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for listener tasks scheduled by fire()."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def dispose(self) -> None:
        self._listeners.clear()
