"""
Configuration management for rotaplay
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger


@dataclass
class StationConfig:
    """Configuration for station-wide settings."""

    # IANA zone used when the settings table has no station_timezone row
    timezone: str = "UTC"


@dataclass
class RotationConfig:
    """Configuration for the rotation engine."""

    artist_gap: int = 6  # Overridden by the artist_repeat_block setting
    category_gap: int = 1
    title_gap: int = 2
    title_block_size: int = 2

    def validate(self) -> None:
        """Validate rotation configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        for name in ("artist_gap", "category_gap", "title_gap", "title_block_size"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")


@dataclass
class LiquidsoapConfig:
    """Configuration for the audio engine telnet interface."""

    host: str = "localhost"
    port: int = 1234
    timeout: float = 3.0
    banner_grace: float = 0.1  # Seconds spent draining the welcome banner
    ack_wait: float = 0.2  # Seconds to wait before discarding the command ack


@dataclass
class WatcherConfig:
    """Configuration for the schedule boundary watcher."""

    interval_seconds: float = 30.0

    def validate(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got {self.interval_seconds}"
            )


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/rotaplay/rotaplay.log)
    )
    console_output: bool = True  # Supervised processes log to stderr as well


@dataclass
class Config:
    """Main configuration object."""

    station: StationConfig = field(default_factory=StationConfig)
    rotation: RotationConfig = field(default_factory=RotationConfig)
    liquidsoap: LiquidsoapConfig = field(default_factory=LiquidsoapConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "rotaplay"
    return Path.home() / ".config" / "rotaplay"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in project root by looking for pyproject.toml.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            return config_path if config_path.exists() else None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/rotaplay (or ~/.config/rotaplay)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "rotaplay"
    return Path.home() / ".local" / "share" / "rotaplay"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# rotaplay configuration

[station]
# Fallback timezone when the settings table has no station_timezone
timezone = "UTC"

[rotation]
# Minimum slots between two songs by the same artist
# (the artist_repeat_block setting takes precedence)
artist_gap = 6

# Minimum slots between two songs of the same category
category_gap = 1

# Minimum slots between two renditions of the same title
title_gap = 2

# Recent plays checked by the title repeat block
title_block_size = 2

[liquidsoap]
host = "localhost"
port = 1234

# Connect/read timeout in seconds
timeout = 3.0

[watcher]
# Seconds between schedule boundary checks
interval_seconds = 30

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/rotaplay/rotaplay.log)
# log_file = "/var/log/rotaplay.log"

# Also log to stderr
console_output = true
""".strip()


def _apply_env_overrides(config: Config) -> None:
    host = os.environ.get("LIQUIDSOAP_HOST")
    port = os.environ.get("LIQUIDSOAP_PORT")
    timezone = os.environ.get("STATION_TIMEZONE")

    if host:
        config.liquidsoap.host = host
    if port:
        try:
            config.liquidsoap.port = int(port)
        except ValueError:
            logger.warning(f"Ignoring invalid LIQUIDSOAP_PORT: {port!r}")
    if timezone:
        config.station.timezone = timezone


def parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML data, keeping defaults for missing keys."""
    config = Config()

    if "station" in toml_data:
        station_data = toml_data["station"]
        config.station = StationConfig(
            timezone=station_data.get("timezone", config.station.timezone),
        )

    if "rotation" in toml_data:
        rotation_data = toml_data["rotation"]
        config.rotation = RotationConfig(
            artist_gap=int(rotation_data.get("artist_gap", config.rotation.artist_gap)),
            category_gap=int(
                rotation_data.get("category_gap", config.rotation.category_gap)
            ),
            title_gap=int(rotation_data.get("title_gap", config.rotation.title_gap)),
            title_block_size=int(
                rotation_data.get("title_block_size", config.rotation.title_block_size)
            ),
        )
        try:
            config.rotation.validate()
        except ValueError as e:
            logger.warning(f"Invalid rotation configuration: {e}; using defaults")
            config.rotation = RotationConfig()

    if "liquidsoap" in toml_data:
        liq_data = toml_data["liquidsoap"]
        config.liquidsoap = LiquidsoapConfig(
            host=liq_data.get("host", config.liquidsoap.host),
            port=int(liq_data.get("port", config.liquidsoap.port)),
            timeout=float(liq_data.get("timeout", config.liquidsoap.timeout)),
            banner_grace=float(
                liq_data.get("banner_grace", config.liquidsoap.banner_grace)
            ),
            ack_wait=float(liq_data.get("ack_wait", config.liquidsoap.ack_wait)),
        )

    if "watcher" in toml_data:
        watcher_data = toml_data["watcher"]
        config.watcher = WatcherConfig(
            interval_seconds=float(
                watcher_data.get("interval_seconds", config.watcher.interval_seconds)
            ),
        )
        try:
            config.watcher.validate()
        except ValueError as e:
            logger.warning(f"Invalid watcher configuration: {e}; using defaults")
            config.watcher = WatcherConfig()

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return config


def load_config() -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - LIQUIDSOAP_HOST
    - LIQUIDSOAP_PORT
    - STATION_TIMEZONE
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    load_dotenv()

    config_path = get_config_path()

    if not config_path.exists():
        config = Config()
        _apply_env_overrides(config)
        return config

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
        config = parse_config(toml_data)
    except (OSError, tomllib.TOMLDecodeError, ValueError, TypeError) as e:
        logger.warning(f"Error loading configuration from {config_path}: {e}")
        config = Config()

    _apply_env_overrides(config)
    return config


def write_default_config() -> Path:
    """Write the default configuration file if none exists yet."""
    config_path = get_config_dir() / "config.toml"
    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
    return config_path


def ensure_directories() -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
