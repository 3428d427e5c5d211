"""In-memory event bus with named listeners and concurrent fan-out."""
import asyncio
import inspect
from collections.abc import Callable
from typing import Any

import structlog

from basin.errors import BasinError, HandlerError
from basin.events.types import EventKey, EventName

logger = structlog.get_logger()

Handler = Callable[..., Any]


def event_label(name: EventKey) -> str:
    """Printable form of an event name for logs and error messages."""
    return name.value if isinstance(name, EventName) else name


def handler_label(handler: Handler) -> str:
    """Qualified name of a handler for logs and error messages."""
    target = getattr(handler, "handler", handler)
    return getattr(target, "__qualname__", None) or repr(target)


class OnceHandler:
    """Wrapper that removes itself from the bus when first invoked.

    Deregistration and the fired flag are both set synchronously in
    ``__call__``, before the wrapped handler runs, so concurrent emits of the
    same name can never invoke the handler twice.

    Attributes:
        handler: The wrapped handler.
        fired: Whether the wrapper has been invoked.
    """

    def __init__(self, bus: "EventBus", name: EventKey, handler: Handler) -> None:
        self._bus = bus
        self._name = name
        self.handler = handler
        self.fired = False

    def __call__(self, *args: Any) -> Any:
        if self.fired:
            return None
        self.fired = True
        self._bus.off(self._name, self)
        return self.handler(*args)

    def __repr__(self) -> str:
        return f"OnceHandler({handler_label(self.handler)})"


class EventBus:
    """Async event bus with named listener lists.

    Handlers are called as ``handler(context, *args)``, where ``context`` is
    the object given at construction (the engine, for a Basin). Handlers may
    be plain functions or coroutine functions.

    Attributes:
        context: First argument passed to every handler.
    """

    def __init__(self, context: Any = None) -> None:
        """Initialize event bus.

        Args:
            context: Object passed as the first argument to every handler.
        """
        self.context = context
        self._listeners: dict[EventKey, list[Handler]] = {}
        self._running: set[asyncio.Task[Any]] = set()

    def on(self, name: EventKey | Handler, handler: Handler | None = None) -> Handler:
        """Register a handler for an event.

        Called with a single callable, the handler is registered on the
        default channel.

        Args:
            name: Event name, or the handler itself.
            handler: Callable invoked on emit.

        Returns:
            The registered handler, usable with off().

        Raises:
            TypeError: If the handler is not callable.
        """
        if handler is None and callable(name):
            name, handler = EventName.DEFAULT, name
        if not callable(handler):
            raise TypeError(f"Handler for {event_label(name)!r} is not callable")
        self._listeners.setdefault(name, []).append(handler)
        logger.debug(
            "listener_added",
            event_name=event_label(name),
            handler=handler_label(handler),
        )
        return handler

    def once(self, name: EventKey | Handler, handler: Handler | None = None) -> OnceHandler:
        """Register a handler that runs at most once.

        Args:
            name: Event name, or the handler itself for the default channel.
            handler: Callable invoked on the first emit only.

        Returns:
            The wrapper that was registered.
        """
        if handler is None and callable(name):
            name, handler = EventName.DEFAULT, name
        if not callable(handler):
            raise TypeError(f"Handler for {event_label(name)!r} is not callable")
        wrapper = OnceHandler(self, name, handler)
        self.on(name, wrapper)
        return wrapper

    def off(self, name: EventKey, handler: Handler) -> None:
        """Remove the first registration of a handler.

        A handler registered through once() can be removed either by its
        wrapper or by the original callable. Unknown handlers are ignored.

        Args:
            name: Event name.
            handler: Handler or once-wrapper to remove.
        """
        listeners = self._listeners.get(name)
        if not listeners:
            return
        for index, registered in enumerate(listeners):
            if registered is handler or (
                isinstance(registered, OnceHandler) and registered.handler is handler
            ):
                del listeners[index]
                logger.debug(
                    "listener_removed",
                    event_name=event_label(name),
                    handler=handler_label(handler),
                )
                return

    def listeners(self, name: EventKey) -> list[Handler]:
        """Snapshot of the handlers registered for an event."""
        return list(self._listeners.get(name, ()))

    async def emit(self, name: EventKey, *args: Any) -> list[Any]:
        """Invoke every handler of an event concurrently.

        Handlers are snapshotted when emit is called, so handlers registered
        during this emit are not invoked by it. The first handler failure is
        raised once it occurs; handlers already running are not cancelled.

        Args:
            name: Event name.
            *args: Arguments passed to each handler after the context.

        Returns:
            Handler results in registration order, empty without handlers.

        Raises:
            HandlerError: If a handler raised a non-basin exception.
            BasinError: If a handler raised a basin error, unchanged.
        """
        snapshot = self.listeners(name)
        if not snapshot:
            return []

        logger.debug(
            "event_emitted",
            event_name=event_label(name),
            listeners=len(snapshot),
        )
        tasks = [
            asyncio.create_task(self._invoke(name, handler, args))
            for handler in snapshot
        ]
        for task in tasks:
            self._running.add(task)
            task.add_done_callback(self._running.discard)
        return list(await asyncio.gather(*tasks))

    @property
    def running(self) -> int:
        """Number of handler invocations still in progress."""
        return len(self._running)

    async def drain(self) -> None:
        """Wait until every started handler invocation has finished.

        Covers handlers left running after a sibling failed an emit, and
        handlers started by nested emits while waiting.
        """
        while self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def _invoke(self, name: EventKey, handler: Handler, args: tuple[Any, ...]) -> Any:
        try:
            result = handler(self.context, *args)
            if inspect.isawaitable(result):
                result = await result
        except BasinError:
            raise
        except Exception as e:
            raise HandlerError(
                f"Handler {handler_label(handler)} failed on "
                f"{event_label(name)!r}: {e}",
                name,
                handler_label(handler),
            ) from e
        return result
