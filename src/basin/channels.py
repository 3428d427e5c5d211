"""Channel registry: named glob pattern groups compiled into predicates."""
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass

import structlog
from pathspec import GitIgnoreSpec, PathSpec

from basin.errors import ConfigurationError
from basin.events.types import EventKey, EventName

logger = structlog.get_logger()

DEFAULT_PATTERN = "**/*"

PatternSpec = str | Sequence[str] | None

_RESERVED_NAMES: frozenset[EventName] = frozenset({EventName.READY, EventName.ALL})
_RESERVED_VALUES: frozenset[str] = frozenset(member.value for member in EventName)


def normalize_pattern(pattern: str) -> str:
    """Strip surrounding whitespace and a leading ``./`` from a glob.

    Args:
        pattern: Raw glob pattern.

    Returns:
        Pattern suitable for gitignore-style compilation.
    """
    pattern = pattern.strip()
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern


def compile_patterns(patterns: Iterable[str]) -> PathSpec:
    """Compile glob patterns with gitignore matching rules.

    Args:
        patterns: Normalized glob patterns.

    Returns:
        PathSpec accepting any path matched by at least one pattern.
    """
    return GitIgnoreSpec.from_lines(patterns)


@dataclass(frozen=True)
class Channel:
    """Named group of glob patterns.

    Attributes:
        name: Channel name, used as the event name on dispatch.
        patterns: Normalized patterns in declaration order.
        spec: Compiled matcher for the patterns.
    """

    name: EventKey
    patterns: tuple[str, ...]
    spec: PathSpec

    def matches(self, path: str) -> bool:
        """Check whether a root-relative path belongs to this channel."""
        return self.spec.match_file(path)


class ChannelRegistry:
    """Ordered collection of channels.

    Channels are matched in registration order, which is also the order in
    which the controller emits channel events for one notification.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._channels: dict[EventKey, Channel] = {}

    @classmethod
    def from_mapping(
        cls,
        channels: Mapping[EventKey, PatternSpec] | None,
    ) -> "ChannelRegistry":
        """Build a registry from a name -> pattern(s) mapping.

        Args:
            channels: Channel definitions. None selects the default channel
                matching every path.

        Returns:
            Populated registry.

        Raises:
            ConfigurationError: If any name or pattern is invalid.
        """
        registry = cls()
        if channels is None:
            channels = {EventName.DEFAULT: DEFAULT_PATTERN}
        for name, patterns in channels.items():
            registry.register(name, patterns)
        return registry

    def register(self, name: EventKey, patterns: PatternSpec) -> Channel | None:
        """Compile and record a channel.

        Args:
            name: Channel name. Any non-empty string, or EventName.DEFAULT.
            patterns: One glob, a sequence of globs, or None to skip the
                channel.

        Returns:
            The registered channel, or None if it was skipped.

        Raises:
            ConfigurationError: If the name is empty, reserved or already
                registered, or if a pattern is empty.
        """
        self._check_name(name)
        if patterns is None:
            logger.debug("channel_skipped", channel=_display(name))
            return None

        raw = [patterns] if isinstance(patterns, str) else list(patterns)
        if not raw:
            raise ConfigurationError(
                f"Channel {_display(name)!r} has no patterns", _display(name)
            )

        normalized: list[str] = []
        for pattern in raw:
            if not isinstance(pattern, str) or not normalize_pattern(pattern):
                raise ConfigurationError(
                    f"Channel {_display(name)!r} has an empty pattern",
                    _display(name),
                )
            normalized.append(normalize_pattern(pattern))

        channel = Channel(
            name=name,
            patterns=tuple(normalized),
            spec=compile_patterns(normalized),
        )
        self._channels[name] = channel
        logger.debug(
            "channel_registered",
            channel=_display(name),
            patterns=list(channel.patterns),
        )
        return channel

    def _check_name(self, name: EventKey) -> None:
        if isinstance(name, EventName):
            if name in _RESERVED_NAMES:
                raise ConfigurationError(
                    f"Channel name {name.value!r} is reserved", name.value
                )
        elif not isinstance(name, str) or not name.strip():
            raise ConfigurationError("Channel name must be a non-empty string", None)
        elif name in _RESERVED_VALUES:
            raise ConfigurationError(f"Channel name {name!r} is reserved", name)

        if name in self._channels:
            raise ConfigurationError(
                f"Channel {_display(name)!r} is already registered", _display(name)
            )

    def all_patterns(self) -> list[str]:
        """Every pattern of every channel, flattened in registration order."""
        return [
            pattern
            for channel in self._channels.values()
            for pattern in channel.patterns
        ]

    def channels_matching(self, path: str) -> list[EventKey]:
        """Names of the channels accepting ``path``, in registration order.

        Args:
            path: Root-relative path with POSIX separators.

        Returns:
            Matching channel names, possibly empty.
        """
        return [
            channel.name
            for channel in self._channels.values()
            if channel.matches(path)
        ]

    def watch_spec(self) -> PathSpec:
        """Single matcher accepting any path of any channel."""
        return compile_patterns(self.all_patterns())

    def names(self) -> list[EventKey]:
        """Registered channel names in registration order."""
        return list(self._channels)

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._channels.values())

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, name: object) -> bool:
        return name in self._channels


def _display(name: EventKey) -> str:
    return name.value if isinstance(name, EventName) else name
