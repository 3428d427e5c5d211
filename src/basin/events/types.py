"""Event names and payload types for change dispatch."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EventName(Enum):
    """Reserved event names.

    Members are not strings, so no user-supplied channel or event name can
    ever compare equal to one of them.
    """

    READY = "basin.ready"
    ALL = "basin.all"
    DEFAULT = "basin.default"


EventKey = str | EventName


class ChangeKind(str, Enum):
    """Classified watcher notification kinds."""

    INITIAL_SCAN_DONE = "initial_scan_done"
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


CONTENT_KINDS: frozenset[ChangeKind] = frozenset(
    {
        ChangeKind.ADDED,
        ChangeKind.MODIFIED,
    }
)


DEFAULT_IGNORE: tuple[str, ...] = (
    "*.swp",
    "*.swo",
    "*.swn",
    "*.tmp",
    "*.temp",
    "*~",
    ".DS_Store",
    ".git/",
    "4913",
)


class Notification(BaseModel):
    """Raw watcher notification, before classification into a payload.

    Attributes:
        kind: Notification kind.
        path: Path as reported by the watcher (usually absolute).
    """

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind = Field(description="Notification kind")
    path: str = Field(default="", description="Path reported by the watcher")


class ChangeEvent(BaseModel):
    """Payload dispatched to channel and broadcast handlers.

    One instance is built per notification and shared by every handler of
    that dispatch. It is immutable; pipeline stages derive new payloads with
    ``model_copy(update=...)`` and re-emit them.

    Attributes:
        kind: Change kind.
        path: Path relative to the configured root, with POSIX separators.
        content: File body, only for added/modified files with emit_file.
        root: Configured root directory, if any.
    """

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind = Field(description="Change kind")
    path: str = Field(description="Root-relative file path")
    content: str | None = Field(default=None, description="File content")
    root: str | None = Field(default=None, description="Configured root")
