"""Pytest configuration and fixtures."""

import asyncio
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from basin.engine import Basin
from basin.events.types import ChangeKind, Notification


class FakeWatcher:
    """Watcher double that lets tests inject notifications."""

    def __init__(
        self,
        root: Path,
        accept: Callable[[str], bool],
        on_notification: Callable[[Notification], Any],
    ) -> None:
        self.root = root
        self.accept = accept
        self.on_notification = on_notification
        self.started = False
        self.stop_calls = 0
        self.joined = False

    @property
    def stopped(self) -> bool:
        return self.stop_calls > 0

    async def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stop_calls += 1

    async def join(self) -> None:
        self.joined = True

    def notify(self, kind: ChangeKind, path: str = "") -> "asyncio.Task[None] | None":
        """Deliver a notification the way a real watcher would."""
        return self.on_notification(Notification(kind=kind, path=path))


@pytest.fixture
def watchers() -> list[FakeWatcher]:
    """Fake watchers created by watcher_factory, in creation order."""
    return []


@pytest.fixture
def watcher_factory(watchers: list[FakeWatcher]) -> Callable[..., FakeWatcher]:
    """Watcher factory producing FakeWatcher instances."""

    def factory(root: Path, accept: Callable[[str], bool], on_notification: Any) -> FakeWatcher:
        watcher = FakeWatcher(root, accept, on_notification)
        watchers.append(watcher)
        return watcher

    return factory


@pytest.fixture
def make_basin(watcher_factory: Callable[..., FakeWatcher]) -> Callable[..., Basin]:
    """Build a Basin wired to fake watchers."""

    def build(**kwargs: Any) -> Basin:
        return Basin(watcher_factory=watcher_factory, **kwargs)

    return build


async def start_basin(basin: Basin, watchers: list[FakeWatcher]) -> tuple["asyncio.Task[None]", FakeWatcher]:
    """Start basin.run() in a task and return it with its watcher."""
    task = asyncio.create_task(basin.run())
    await asyncio.sleep(0)
    return task, watchers[-1]


@pytest.fixture
def start() -> Callable[..., Any]:
    """Expose start_basin to tests as a fixture."""
    return start_basin
