"""Watch controller: readiness state machine and change dispatch."""
import asyncio
from collections.abc import Coroutine
from enum import Enum
from functools import partial
from typing import Any

import structlog
from pathspec import PathSpec

from basin.channels import ChannelRegistry, compile_patterns
from basin.config import BasinOptions
from basin.errors import EngineStateError
from basin.events.bus import EventBus, event_label
from basin.events.types import (
    CONTENT_KINDS,
    ChangeEvent,
    ChangeKind,
    EventName,
    Notification,
)
from basin.events.watcher import FilesystemWatcher, Watcher, WatcherFactory
from basin.io import FileContent, read_file, relative_path

logger = structlog.get_logger()


class ControllerState(str, Enum):
    """Lifecycle states of the watch controller."""

    SCANNING = "scanning"
    READY_WATCHING = "ready_watching"
    READY_CLOSED = "ready_closed"
    CLOSED = "closed"


TERMINAL_STATES: frozenset[ControllerState] = frozenset(
    {
        ControllerState.READY_CLOSED,
        ControllerState.CLOSED,
    }
)


def default_watcher_factory(options: BasinOptions) -> WatcherFactory:
    """Watcher factory building a FilesystemWatcher from engine options."""
    return partial(
        FilesystemWatcher,
        debounce_ms=options.debounce_ms,
        persistent=options.watch,
    )


class WatchController:
    """Drives a watcher and turns its notifications into dispatches.

    Every notification is handled in its own task so that slow handlers of
    one change never block classification of the next. Reads triggered
    before readiness form the initial batch; readiness waits for all of
    them to settle.

    Attributes:
        state: Current lifecycle state.
    """

    def __init__(
        self,
        bus: EventBus,
        registry: ChannelRegistry,
        options: BasinOptions,
        watcher_factory: WatcherFactory | None = None,
    ) -> None:
        """Initialize watch controller.

        Args:
            bus: Event bus dispatches are emitted on.
            registry: Channels used to route changed paths.
            options: Engine options.
            watcher_factory: Builds the watcher; defaults to a watchdog-backed
                FilesystemWatcher.
        """
        self._bus = bus
        self._registry = registry
        self._options = options
        self._watcher_factory = watcher_factory or default_watcher_factory(options)
        self._watch_spec = registry.watch_spec()
        self._ignore_spec: PathSpec = compile_patterns(options.ignore)

        self.state = ControllerState.SCANNING
        self._ready = False
        self._pending_initial_reads: set[asyncio.Task[FileContent]] | None = set()
        self._inflight: set[asyncio.Task[None]] = set()
        self._failure: BaseException | None = None
        self._started = False
        self._scan_done = False
        self._watcher: Watcher | None = None
        self._closed: asyncio.Event | None = None

    @property
    def ready(self) -> bool:
        """Whether the initial scan and its reads have completed."""
        return self._ready

    @property
    def pending_initial_reads(self) -> int:
        """Number of initial-batch reads still in flight."""
        return len(self._pending_initial_reads or ())

    @property
    def closed(self) -> bool:
        """Whether the controller reached a terminal state."""
        return self.state in TERMINAL_STATES

    def is_ignored(self, path: str) -> bool:
        """Check a root-relative path against the ignore patterns."""
        return self._ignore_spec.match_file(path)

    def accepts(self, path: str) -> bool:
        """Check whether a root-relative path should be reported by a watcher."""
        return self._watch_spec.match_file(path) and not self.is_ignored(path)

    def _closed_event(self) -> asyncio.Event:
        if self._closed is None:
            self._closed = asyncio.Event()
        return self._closed

    async def run(self) -> None:
        """Start the watcher and wait until the controller closes.

        Returns after one-shot completion or close(), once every in-flight
        dispatch has settled.

        Raises:
            EngineStateError: If the controller was already started.
            BasinError: The first dispatch failure, after settling.
        """
        if self._started:
            raise EngineStateError("Watch controller can only be run once")
        self._started = True
        closed = self._closed_event()

        self._watcher = self._watcher_factory(
            self._options.root_path, self.accepts, self.submit
        )
        logger.info(
            "controller_started",
            root=str(self._options.root_path),
            watch=self._options.watch,
            channels=[event_label(name) for name in self._registry.names()],
        )
        try:
            await self._watcher.start()
        except BaseException:
            self.close()
            await self._watcher.join()
            raise

        await closed.wait()
        await self.drain()
        await self._watcher.join()

        logger.info("controller_finished", state=self.state.value)
        if self._failure is not None:
            raise self._failure

    async def drain(self) -> None:
        """Wait until no dispatch or handler is in flight, including late arrivals."""
        while self._inflight or self._bus.running:
            await asyncio.gather(*self._inflight, return_exceptions=True)
            await self._bus.drain()

    def close(self) -> None:
        """Stop the watcher and enter the closed state. Idempotent."""
        if self.closed:
            return
        self.state = ControllerState.CLOSED
        self._stop_watcher()
        self._closed_event().set()
        logger.info("controller_closed")

    def _stop_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()

    def submit(self, notification: Notification) -> asyncio.Task[None] | None:
        """Classify a watcher notification and start handling it.

        Must be called on the event loop. Notifications arriving after the
        controller closed are discarded.

        Args:
            notification: Raw watcher notification.

        Returns:
            Task completing when the notification has been handled, or None
            if it was discarded.
        """
        if self.closed:
            logger.debug(
                "notification_discarded",
                kind=notification.kind.value,
                path=notification.path,
            )
            return None

        if notification.kind is ChangeKind.INITIAL_SCAN_DONE:
            if self._scan_done:
                logger.debug("duplicate_scan_completion_ignored")
                return None
            self._scan_done = True
            return self._track(self._complete_scan())

        path = relative_path(notification.path, self._options.root_path)
        if self.is_ignored(path):
            logger.debug("notification_ignored", path=path)
            return None

        read: asyncio.Task[FileContent] | None = None
        if self._options.emit_file and notification.kind in CONTENT_KINDS:
            read = asyncio.create_task(
                read_file(notification.path, self._options.root_path)
            )
            if self._pending_initial_reads is not None:
                self._pending_initial_reads.add(read)
                read.add_done_callback(self._pending_initial_reads.discard)

        return self._track(self._dispatch(notification.kind, path, read))

    def _track(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._settled)
        return task

    def _settled(self, task: asyncio.Task[None]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(
            "dispatch_failed",
            error=str(error),
            error_type=type(error).__name__,
        )
        if self._failure is None:
            self._failure = error

    async def _complete_scan(self) -> None:
        pending = self._pending_initial_reads
        if pending:
            logger.debug("awaiting_initial_reads", count=len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        if self.closed:
            return

        self._pending_initial_reads = None
        self._ready = True
        if self._options.watch:
            self.state = ControllerState.READY_WATCHING
        else:
            self.state = ControllerState.READY_CLOSED
            self._stop_watcher()
            self._closed_event().set()
        logger.info("engine_ready", state=self.state.value)

        await self._bus.emit(EventName.READY)

    async def _dispatch(
        self,
        kind: ChangeKind,
        path: str,
        read: asyncio.Task[FileContent] | None,
    ) -> None:
        content = None
        if read is not None:
            content = (await read).content

        event = ChangeEvent(
            kind=kind,
            path=path,
            content=content,
            root=self._options.root,
        )
        channels = self._registry.channels_matching(path)
        logger.debug(
            "change_dispatched",
            kind=kind.value,
            path=path,
            channels=[event_label(name) for name in channels],
        )

        emissions = [self._bus.emit(EventName.ALL, event)]
        emissions.extend(self._bus.emit(name, event) for name in channels)
        results = await asyncio.gather(*emissions, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
