"""Events subsystem: event bus, payload types and filesystem watching."""
from basin.events.bus import EventBus, OnceHandler
from basin.events.types import ChangeEvent, ChangeKind, EventName, Notification
from basin.events.watcher import FilesystemWatcher, Watcher

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "EventBus",
    "EventName",
    "FilesystemWatcher",
    "Notification",
    "OnceHandler",
    "Watcher",
]
