"""Event bus tests."""

import asyncio

import pytest

from basin.errors import ConfigurationError, HandlerError
from basin.events.bus import EventBus
from basin.events.types import EventName


@pytest.fixture
def bus() -> EventBus:
    """Create a bus whose handler context is a plain marker object."""
    return EventBus(context="ctx")


@pytest.mark.asyncio
async def test_emit_passes_context_and_args(bus: EventBus) -> None:
    """Handlers receive the context followed by the emitted arguments."""
    calls = []
    bus.on("build", lambda ctx, *args: calls.append((ctx, args)))

    await bus.emit("build", "a.css", 1)

    assert calls == [("ctx", ("a.css", 1))]


@pytest.mark.asyncio
async def test_emit_without_handlers_returns_empty(bus: EventBus) -> None:
    """Emitting an unknown name succeeds with no results."""
    assert await bus.emit("nobody-listens") == []
    assert await bus.emit(EventName.READY) == []


@pytest.mark.asyncio
async def test_emit_returns_results_in_registration_order(bus: EventBus) -> None:
    """Sync and async handler results are gathered in order."""

    async def slow(ctx):
        await asyncio.sleep(0.01)
        return "slow"

    bus.on("x", slow)
    bus.on("x", lambda ctx: "fast")

    assert await bus.emit("x") == ["slow", "fast"]


@pytest.mark.asyncio
async def test_handlers_run_concurrently(bus: EventBus) -> None:
    """Two handlers can wait on each other, which deadlocks if sequential."""
    first_started = asyncio.Event()
    second_started = asyncio.Event()

    async def first(ctx):
        first_started.set()
        await asyncio.wait_for(second_started.wait(), timeout=1)

    async def second(ctx):
        second_started.set()
        await asyncio.wait_for(first_started.wait(), timeout=1)

    bus.on("x", first)
    bus.on("x", second)

    await bus.emit("x")


@pytest.mark.asyncio
async def test_once_runs_exactly_once(bus: EventBus) -> None:
    """A once-handler fires on the first emit only."""
    calls = []
    bus.once("x", lambda ctx: calls.append(1))

    await bus.emit("x")
    await bus.emit("x")

    assert calls == [1]
    assert bus.listeners("x") == []


@pytest.mark.asyncio
async def test_once_runs_exactly_once_under_concurrent_emits(bus: EventBus) -> None:
    """Concurrent emits cannot invoke a once-handler twice."""
    calls = []

    async def handler(ctx):
        calls.append(1)
        await asyncio.sleep(0)

    bus.once("x", handler)

    await asyncio.gather(bus.emit("x"), bus.emit("x"), bus.emit("x"))

    assert calls == [1]


@pytest.mark.asyncio
async def test_off_removes_first_matching_registration(bus: EventBus) -> None:
    """off() removes one registration and ignores unknown handlers."""
    calls = []

    def handler(ctx):
        calls.append(1)

    bus.on("x", handler)
    bus.on("x", handler)
    bus.off("x", handler)
    bus.off("x", lambda ctx: None)
    bus.off("unknown", handler)

    await bus.emit("x")

    assert calls == [1]


@pytest.mark.asyncio
async def test_off_accepts_original_once_handler(bus: EventBus) -> None:
    """A once-registration can be removed by its original callable."""
    calls = []

    def handler(ctx):
        calls.append(1)

    bus.once("x", handler)
    bus.off("x", handler)
    await bus.emit("x")

    assert calls == []


@pytest.mark.asyncio
async def test_handlers_registered_during_emit_are_not_invoked(bus: EventBus) -> None:
    """emit() works on a snapshot of the handlers."""
    late_calls = []

    def late(ctx):
        late_calls.append(1)

    def registering(ctx):
        bus.on("x", late)

    bus.on("x", registering)

    await bus.emit("x")
    assert late_calls == []

    await bus.emit("x")
    assert late_calls == [1]


@pytest.mark.asyncio
async def test_handler_failure_is_wrapped(bus: EventBus) -> None:
    """A failing handler fails the emit with a HandlerError."""

    def broken(ctx):
        raise ValueError("boom")

    bus.on("x", broken)

    with pytest.raises(HandlerError) as excinfo:
        await bus.emit("x")

    assert isinstance(excinfo.value.__cause__, ValueError)
    assert excinfo.value.event == "x"
    assert "broken" in excinfo.value.handler


@pytest.mark.asyncio
async def test_failure_does_not_cancel_running_handlers(bus: EventBus) -> None:
    """Other handlers keep running after the first failure."""
    finished = asyncio.Event()

    async def broken(ctx):
        raise RuntimeError("boom")

    async def slow(ctx):
        await asyncio.sleep(0.01)
        finished.set()

    bus.on("x", slow)
    bus.on("x", broken)

    with pytest.raises(HandlerError):
        await bus.emit("x")

    await asyncio.wait_for(finished.wait(), timeout=1)


@pytest.mark.asyncio
async def test_basin_errors_propagate_unwrapped(bus: EventBus) -> None:
    """Nested emits do not wrap errors twice."""

    def inner(ctx):
        raise KeyError("missing")

    async def outer(ctx):
        await bus.emit("inner")

    def misconfigured(ctx):
        raise ConfigurationError("bad")

    bus.on("inner", inner)
    bus.on("outer", outer)
    bus.on("config", misconfigured)

    with pytest.raises(HandlerError) as excinfo:
        await bus.emit("outer")
    assert excinfo.value.event == "inner"

    with pytest.raises(ConfigurationError):
        await bus.emit("config")


@pytest.mark.asyncio
async def test_single_callable_registers_on_default(bus: EventBus) -> None:
    """on(handler) registers on the default channel."""
    calls = []
    bus.on(lambda ctx, value: calls.append(value))

    await bus.emit(EventName.DEFAULT, 7)

    assert calls == [7]


def test_reserved_names_do_not_collide_with_strings(bus: EventBus) -> None:
    """A string spelling a reserved value is a different event."""
    bus.on(EventName.READY, lambda ctx: None)
    assert bus.listeners("basin.ready") == []
    assert len(bus.listeners(EventName.READY)) == 1


def test_non_callable_handler_is_rejected(bus: EventBus) -> None:
    """Registering a non-callable raises TypeError."""
    with pytest.raises(TypeError):
        bus.on("x", "not callable")


@pytest.mark.asyncio
async def test_drain_waits_for_handlers_left_running(bus: EventBus) -> None:
    """drain() covers handlers still running after an emit failed."""
    finished = []

    async def broken(ctx):
        raise RuntimeError("boom")

    async def slow(ctx):
        await asyncio.sleep(0.02)
        finished.append(1)

    bus.on("x", broken)
    bus.on("x", slow)

    with pytest.raises(HandlerError):
        await bus.emit("x")
    assert bus.running == 1

    await asyncio.wait_for(bus.drain(), timeout=1)

    assert finished == [1]
    assert bus.running == 0
