"""Basin engine: the object pipeline authors build on."""
import os
from pathlib import Path
from typing import Any

import structlog

from basin.cache import CacheStore
from basin.channels import ChannelRegistry
from basin.config import BasinOptions
from basin.controller import WatchController
from basin.errors import ConfigurationError
from basin.events.bus import EventBus, Handler, OnceHandler
from basin.events.types import EventKey, EventName
from basin.events.watcher import WatcherFactory
from basin.io import FileContent, read_file, remove_tree, write_file

logger = structlog.get_logger()


class Basin:
    """File-change-driven build engine.

    Watches the configured root, routes every change to the broadcast
    event and to each matching channel, and gives handlers a shared cache
    and file helpers. Handlers receive the engine as their first argument::

        basin = Basin(root="src", channels={"css": "**/*.css"})

        async def compile_css(basin, event):
            basin.cache("css", event.path, event.content)
            await basin.emit("write", event.path)

        basin.on("css", compile_css)
        await basin.run()

    Attributes:
        options: Validated engine options.
    """

    Ready = EventName.READY
    All = EventName.ALL
    Default = EventName.DEFAULT

    def __init__(
        self,
        options: BasinOptions | None = None,
        *,
        watcher_factory: WatcherFactory | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the engine.

        Args:
            options: Prebuilt options. Mutually exclusive with keywords.
            watcher_factory: Replaces the default watchdog-backed watcher.
            **kwargs: BasinOptions fields (watch, emit_file, root, ignore,
                channels or sources, debounce_ms).

        Raises:
            ConfigurationError: If options or channel definitions are invalid.
        """
        if options is not None and kwargs:
            raise ConfigurationError(
                "Pass either a BasinOptions instance or keyword options, not both"
            )
        self.options = options if options is not None else BasinOptions.build(**kwargs)
        self._registry = ChannelRegistry.from_mapping(self.options.channels)
        self._bus = EventBus(context=self)
        self._store = CacheStore()
        self._controller = WatchController(
            self._bus,
            self._registry,
            self.options,
            watcher_factory=watcher_factory,
        )
        logger.debug(
            "basin_created",
            root=self.options.root,
            watch=self.options.watch,
            emit_file=self.options.emit_file,
            channels=len(self._registry),
        )

    @property
    def ready(self) -> bool:
        """Whether the initial scan and its reads have completed."""
        return self._controller.ready

    @property
    def controller(self) -> WatchController:
        """The watch controller driving this engine."""
        return self._controller

    @property
    def channels(self) -> list[EventKey]:
        """Channel names in registration order."""
        return self._registry.names()

    @property
    def patterns(self) -> list[str]:
        """Every watched pattern across all channels."""
        return self._registry.all_patterns()

    def channels_matching(self, path: str) -> list[EventKey]:
        """Names of the channels a root-relative path is routed to."""
        return self._registry.channels_matching(path)

    # Event bus

    def on(self, name: EventKey | Handler, handler: Handler | None = None) -> Handler:
        """Register a handler; see EventBus.on."""
        return self._bus.on(name, handler)

    def once(self, name: EventKey | Handler, handler: Handler | None = None) -> OnceHandler:
        """Register a one-shot handler; see EventBus.once."""
        return self._bus.once(name, handler)

    def off(self, name: EventKey, handler: Handler) -> None:
        """Remove a handler; see EventBus.off."""
        self._bus.off(name, handler)

    async def emit(self, name: EventKey, *args: Any) -> list[Any]:
        """Emit an event to its handlers; see EventBus.emit."""
        return await self._bus.emit(name, *args)

    # Cache store

    def cache(self, store: str, key: str, value: Any) -> Any:
        """Upsert a cached artifact; see CacheStore.cache."""
        return self._store.cache(store, key, value)

    def purge(self, store: str, key: str) -> Any | None:
        """Remove a cached artifact; see CacheStore.purge."""
        return self._store.purge(store, key)

    def get(self, store: str, key: str | None = None) -> Any:
        """Look up cached artifacts; see CacheStore.get."""
        return self._store.get(store, key)

    # File helpers

    async def read(
        self,
        path: str | os.PathLike[str],
        root: str | os.PathLike[str] | None = None,
    ) -> FileContent:
        """Read a text file relative to root (the engine root by default)."""
        return await read_file(path, root if root is not None else self.options.root)

    async def write(
        self,
        path: str | os.PathLike[str],
        content: str | bytes,
        root: str | os.PathLike[str] | None = None,
    ) -> Path:
        """Write a file below root, creating directories as needed."""
        return await write_file(path, content, root)

    async def rimraf(self, pattern: str | os.PathLike[str]) -> int:
        """Recursively delete everything matching a glob."""
        return await remove_tree(pattern)

    # Lifecycle

    async def run(self) -> None:
        """Scan the root, dispatch changes and wait for the engine to close.

        In one-shot mode (watch=False) this returns once the initial scan is
        ready and its dispatches have settled. In watch mode it returns after
        close().

        Raises:
            EngineStateError: If run() was already called.
            BasinError: The first failed dispatch, after all have settled.
        """
        await self._controller.run()

    def close(self) -> None:
        """Stop watching. Changes reported afterwards are discarded."""
        self._controller.close()

    def __repr__(self) -> str:
        return (
            f"Basin(root={self.options.root!r}, watch={self.options.watch}, "
            f"channels={len(self._registry)}, ready={self.ready})"
        )
