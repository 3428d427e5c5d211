"""Engine options and command-line settings."""
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from basin.errors import ConfigurationError
from basin.events.types import DEFAULT_IGNORE, EventKey


class BasinOptions(BaseModel):
    """Construction options for a Basin engine.

    Attributes:
        watch: Keep watching after the initial scan (False stops once ready).
        emit_file: Read added/modified files and attach their content.
        root: Base directory; patterns and emitted paths are relative to it.
        ignore: Glob patterns excluded from dispatch.
        channels: Channel name -> glob(s). None selects the default channel.
        debounce_ms: Debounce window for filesystem events.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="forbid",
    )

    watch: bool = False
    emit_file: bool = False
    root: str | None = None
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    channels: dict[EventKey, str | list[str] | None] | None = Field(
        default=None,
        validation_alias=AliasChoices("channels", "sources"),
    )
    debounce_ms: int = Field(default=50, ge=0)

    @field_validator("ignore", mode="before")
    @classmethod
    def _split_ignore(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("root", mode="before")
    @classmethod
    def _stringify_root(cls, value: Any) -> Any:
        if isinstance(value, Path):
            return str(value)
        return value

    @classmethod
    def build(cls, **kwargs: Any) -> "BasinOptions":
        """Validate keyword options, converting failures to ConfigurationError.

        Args:
            **kwargs: Option values, by field name or alias.

        Returns:
            Validated options.

        Raises:
            ConfigurationError: If an option is unknown or has a bad value.
        """
        try:
            return cls(**kwargs)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or None
            raise ConfigurationError(
                f"Invalid basin options: {first['msg']}", field
            ) from e

    @property
    def root_path(self) -> Path:
        """Root as an absolute path, defaulting to the current directory."""
        return Path(self.root or ".").absolute()


def load_channels(config_file: Path) -> dict[str, str | list[str] | None] | None:
    """Load channel definitions from a YAML file.

    The file holds a mapping with a ``channels`` (or ``sources``) key.

    Args:
        config_file: Path to the YAML file.

    Returns:
        Channel mapping, or None if the file does not define one.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        raw = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read config file {config_file}: {e}", "config_file"
        ) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in {config_file}: {e}", "config_file"
        ) from e

    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_file} must contain a mapping", "config_file"
        )

    channels = data.get("channels", data.get("sources"))
    if channels is not None and not isinstance(channels, dict):
        raise ConfigurationError(
            f"'channels' in {config_file} must be a mapping", "channels"
        )
    return channels


class Settings(BaseSettings):
    """Command-line runner configuration loaded from environment variables.

    Attributes:
        root: Directory to watch.
        watch: Keep watching after the initial scan.
        emit_file: Attach file content to change events.
        debug: Enable debug-level logging.
        json_logs: Render logs as JSON instead of console output.
        debounce_ms: Debounce window for filesystem events.
        ignore_raw: Comma-separated ignore globs, appended to the defaults.
        config_file: YAML file holding the channel mapping.
    """

    model_config = SettingsConfigDict(
        env_prefix="BASIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    root: str = "."
    watch: bool = True
    emit_file: bool = False
    debug: bool = False
    json_logs: bool = True
    debounce_ms: int = 50
    ignore_raw: str = ""
    config_file: str = "basin.yaml"

    @computed_field
    @property
    def ignore(self) -> list[str]:
        """Parse ignore globs from comma-separated string.

        Returns:
            Default ignore globs followed by the configured ones.
        """
        extra = [
            pattern.strip()
            for pattern in self.ignore_raw.split(",")
            if pattern.strip()
        ]
        return [*DEFAULT_IGNORE, *extra]

    def to_options(self) -> BasinOptions:
        """Build engine options, loading channels from the config file.

        A missing config file selects the default channel.

        Returns:
            Validated engine options.

        Raises:
            ConfigurationError: If the config file or an option is invalid.
        """
        config_path = Path(self.config_file)
        channels = load_channels(config_path) if config_path.is_file() else None
        return BasinOptions.build(
            watch=self.watch,
            emit_file=self.emit_file,
            root=self.root,
            ignore=self.ignore,
            channels=channels,
            debounce_ms=self.debounce_ms,
        )
