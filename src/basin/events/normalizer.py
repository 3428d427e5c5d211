"""Classification of raw watchdog events into watcher notifications."""

import os

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
)

from basin.events.types import ChangeKind, Notification

KIND_MAP: dict[type[FileSystemEvent], ChangeKind] = {
    FileCreatedEvent: ChangeKind.ADDED,
    FileModifiedEvent: ChangeKind.MODIFIED,
    FileDeletedEvent: ChangeKind.REMOVED,
}


def decode_path(path: str | bytes) -> str:
    """Decode a watchdog path, which may be bytes on some platforms."""
    if isinstance(path, str):
        return path
    return os.fsdecode(path)


def classify_event(raw_event: FileSystemEvent) -> list[Notification]:
    """Map a raw watchdog event to zero or more notifications.

    Moves become a removal of the source path followed by an addition of
    the destination path. Directory events and unmapped event types (opened,
    closed) produce nothing.

    Args:
        raw_event: Watchdog filesystem event.

    Returns:
        Notifications in the order they should be delivered.
    """
    if raw_event.is_directory:
        return []

    if isinstance(raw_event, FileMovedEvent):
        return [
            Notification(kind=ChangeKind.REMOVED, path=decode_path(raw_event.src_path)),
            Notification(kind=ChangeKind.ADDED, path=decode_path(raw_event.dest_path)),
        ]

    kind = KIND_MAP.get(type(raw_event))
    if kind is None:
        return []
    return [Notification(kind=kind, path=decode_path(raw_event.src_path))]
