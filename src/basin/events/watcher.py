"""Watchdog-backed filesystem watcher with initial scan and debouncing."""

import asyncio
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import structlog
from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from basin.errors import FileSystemError
from basin.events.normalizer import classify_event, decode_path
from basin.events.types import ChangeKind, Notification

logger = structlog.get_logger()

NotificationCallback = Callable[[Notification], object]
PathFilter = Callable[[str], bool]

EVENT_PRIORITY: dict[type[FileSystemEvent], int] = {
    FileCreatedEvent: 3,
    FileDeletedEvent: 2,
    FileModifiedEvent: 1,
}


class Watcher(Protocol):
    """Interface the watch controller drives."""

    async def start(self) -> None:
        """Begin reporting notifications, starting with the initial scan."""

    def stop(self) -> None:
        """Stop reporting notifications without blocking."""

    async def join(self) -> None:
        """Wait for background resources to shut down after stop()."""


WatcherFactory = Callable[[Path, PathFilter, NotificationCallback], Watcher]


def get_event_priority(event: FileSystemEvent) -> int:
    """Get priority value for an event type.

    Higher priority events take precedence during debouncing.

    Args:
        event: Filesystem event.

    Returns:
        Priority value (higher = more important).
    """
    return EVENT_PRIORITY.get(type(event), 0)


def scan_tree(root: Path, accept: PathFilter) -> list[Path]:
    """List accepted files below root, sorted, without following symlinks.

    Args:
        root: Directory to scan.
        accept: Predicate over root-relative POSIX paths.

    Returns:
        Absolute paths of accepted regular files.
    """
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_symlink() or not path.is_file():
                continue
            if accept(path.relative_to(root).as_posix()):
                found.append(path)
    return found


class DebouncingHandler(FileSystemEventHandler):
    """Watchdog event handler with time-based debouncing.

    During the debounce window, tracks the highest-priority event type
    to ensure created/deleted events are not lost to subsequent modified
    or closed events. Debounced notifications are handed to the event loop
    with ``call_soon_threadsafe``.

    Attributes:
        debounce_ms: Debounce window in milliseconds.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: NotificationCallback,
        accept: Callable[[str], bool],
        debounce_ms: int = 50,
    ) -> None:
        """Initialize debouncing handler.

        Args:
            loop: Event loop notifications are delivered on.
            callback: Called on the loop with each notification.
            accept: Predicate over absolute paths; rejected paths are dropped.
            debounce_ms: Debounce window in milliseconds.
        """
        super().__init__()
        self._loop = loop
        self._callback = callback
        self._accept = accept
        self.debounce_ms = debounce_ms
        self._pending: dict[str, tuple[threading.Timer, FileSystemEvent, int]] = {}
        self._lock = threading.Lock()
        self._coalesced_count = 0

    @property
    def coalesced_events(self) -> int:
        """Number of events coalesced by debouncing."""
        return self._coalesced_count

    def _deliver(self, event: FileSystemEvent) -> None:
        for notification in classify_event(event):
            if not self._accept(notification.path):
                continue
            logger.debug(
                "watcher_emit",
                path=notification.path,
                kind=notification.kind.value,
            )
            if self._loop.is_closed():
                return
            self._loop.call_soon_threadsafe(self._callback, notification)

    def _emit_event(self, path: str) -> None:
        """Emit debounced event for a path.

        Args:
            path: Path key for the pending event.
        """
        with self._lock:
            entry = self._pending.pop(path, None)
            if entry is None:
                return
            _, event, _ = entry
        self._deliver(event)

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle filesystem event with debouncing.

        Args:
            event: Raw watchdog filesystem event.
        """
        if event.is_directory:
            return

        if event.event_type == "moved":
            self._deliver(event)
            return

        path = decode_path(event.src_path)
        event_priority = get_event_priority(event)
        if event_priority == 0:
            return

        with self._lock:
            existing = self._pending.get(path)
            if existing is not None:
                timer, stored_event, stored_priority = existing
                timer.cancel()
                if stored_priority > event_priority:
                    event, event_priority = stored_event, stored_priority
                self._coalesced_count += 1

            timer = threading.Timer(
                self.debounce_ms / 1000.0,
                self._emit_event,
                args=(path,),
            )
            self._pending[path] = (timer, event, event_priority)
            timer.start()

    def cancel_all(self) -> None:
        """Cancel all pending timers during shutdown."""
        with self._lock:
            for timer, _, _ in self._pending.values():
                timer.cancel()
            self._pending.clear()


class FilesystemWatcher:
    """Filesystem watcher reporting notifications for one root directory.

    ``start()`` scans the tree and reports every accepted file as added,
    then reports the end of the initial scan. In persistent mode a watchdog
    observer keeps reporting changes until ``stop()``.

    Attributes:
        root: Directory being watched.
        persistent: Whether to keep watching after the initial scan.
    """

    def __init__(
        self,
        root: Path,
        accept: PathFilter,
        on_notification: NotificationCallback,
        debounce_ms: int = 50,
        persistent: bool = True,
    ) -> None:
        """Initialize filesystem watcher.

        Args:
            root: Directory to watch.
            accept: Predicate over root-relative POSIX paths.
            on_notification: Called on the event loop for each notification.
            debounce_ms: Debounce window in milliseconds.
            persistent: Start an observer for changes after the scan.
        """
        self.root = root
        self.persistent = persistent
        self._accept = accept
        self._on_notification = on_notification
        self._debounce_ms = debounce_ms
        self._handler: DebouncingHandler | None = None
        self._observer: Observer | None = None  # pyright: ignore[reportInvalidTypeForm]
        self._stopped = False

    @property
    def coalesced_events(self) -> int:
        """Number of events coalesced by debouncing."""
        return self._handler.coalesced_events if self._handler else 0

    def _accept_absolute(self, path: str) -> bool:
        try:
            relative = Path(path).relative_to(self.root).as_posix()
        except ValueError:
            return False
        return self._accept(relative)

    async def start(self) -> None:
        """Start watching and run the initial scan.

        Raises:
            FileSystemError: If the root does not exist or is not a directory.
        """
        if not self.root.exists():
            raise FileSystemError(
                f"Watch root does not exist: {self.root}", str(self.root), "ENOENT"
            )
        if not self.root.is_dir():
            raise FileSystemError(
                f"Watch root is not a directory: {self.root}", str(self.root), "ENOTDIR"
            )

        if self.persistent:
            loop = asyncio.get_running_loop()
            self._handler = DebouncingHandler(
                loop,
                self._on_notification,
                self._accept_absolute,
                self._debounce_ms,
            )
            observer = Observer()
            observer.schedule(self._handler, str(self.root), recursive=True)
            observer.start()
            self._observer = observer
            logger.info("watcher_started", root=str(self.root))

        files = await asyncio.to_thread(scan_tree, self.root, self._accept)
        logger.debug("initial_scan_finished", root=str(self.root), files=len(files))
        for path in files:
            if self._stopped:
                return
            self._on_notification(Notification(kind=ChangeKind.ADDED, path=str(path)))
        if not self._stopped:
            self._on_notification(Notification(kind=ChangeKind.INITIAL_SCAN_DONE))

    def stop(self) -> None:
        """Signal the filesystem observer to stop; see join()."""
        self._stopped = True
        if self._handler is not None:
            self._handler.cancel_all()

        if self._observer is not None:
            self._observer.stop()

        logger.info("watcher_stopped", root=str(self.root))

    async def join(self, timeout: float = 5.0) -> None:
        """Wait for the observer thread to exit after stop().

        The join runs in a worker thread so the event loop keeps serving
        in-flight dispatches meanwhile.

        Args:
            timeout: Seconds to wait for the observer thread.
        """
        observer, self._observer = self._observer, None
        if observer is not None:
            await asyncio.to_thread(observer.join, timeout)

    @property
    def running(self) -> bool:
        """Whether the observer thread is alive."""
        return self._observer is not None and self._observer.is_alive()
