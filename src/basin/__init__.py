"""File-change-driven build orchestration."""
from basin.cache import CacheStore
from basin.channels import Channel, ChannelRegistry
from basin.config import BasinOptions, Settings
from basin.engine import Basin
from basin.errors import (
    BasinError,
    ConfigurationError,
    EngineStateError,
    FileSystemError,
    HandlerError,
    InvalidKeyError,
)
from basin.events import ChangeEvent, ChangeKind, EventBus, EventName, Notification
from basin.io import FileContent, read_file, remove_tree, write_file

__all__ = [
    "Basin",
    "BasinError",
    "BasinOptions",
    "CacheStore",
    "ChangeEvent",
    "ChangeKind",
    "Channel",
    "ChannelRegistry",
    "ConfigurationError",
    "EngineStateError",
    "EventBus",
    "EventName",
    "FileContent",
    "FileSystemError",
    "HandlerError",
    "InvalidKeyError",
    "Notification",
    "Settings",
    "read_file",
    "remove_tree",
    "write_file",
]
