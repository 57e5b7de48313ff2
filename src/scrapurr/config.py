"""
Configuration module for Twitch Scrapurr.
Loads settings from a YAML file, creating it on first run.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from platformdirs import user_config_dir, user_videos_dir

from .errors import ConfigParseError
from .logger import get_logger


APP_NAME = "twitch-scrapurr"
CONFIG_FILENAME = "config.yaml"

DOWNLOADERS = ("streamlink", "yt-dlp")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

REQUIRED_KEYS = (
    "output_directory",
    "convert_to_mp4",
    "use_ffmpeg_convert",
    "generate_contact_sheet",
    "check_interval",
)


@dataclass
class Settings:
    """Persisted user settings."""
    output_directory: str
    convert_to_mp4: bool = True
    use_ffmpeg_convert: bool = False  # Full re-encode instead of stream copy
    generate_contact_sheet: bool = True
    check_interval: int = 60  # seconds between live checks
    downloader: str = "streamlink"  # "streamlink" or "yt-dlp"
    quality: str = "best"
    log_level: str = "INFO"
    log_file: str = ""  # Empty = console only

    @property
    def output_path(self) -> Path:
        return Path(self.output_directory).expanduser()


def default_config_path() -> Path:
    """Per-user location of the config file."""
    return Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME


def default_output_directory() -> str:
    return str(Path(user_videos_dir()) / APP_NAME)


def _expect(path: Path, data: Dict[str, Any], key: str, kind: type, label: str) -> Any:
    value = data[key]
    # bool is a subclass of int, so an int field must reject it explicitly
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigParseError(path, f"'{key}' must be {label}, got {value!r}")
    return value


def parse_settings(data: Any, path: Path) -> Settings:
    """
    Build Settings from a decoded YAML document.

    Args:
        data: Decoded document.
        path: Source path, used in error messages.

    Returns:
        Settings object.

    Raises:
        ConfigParseError: If a required key is missing or has the wrong type.
    """
    if not isinstance(data, dict):
        raise ConfigParseError(path, "expected a mapping of settings")

    missing = [key for key in REQUIRED_KEYS if key not in data]
    if missing:
        raise ConfigParseError(path, f"missing required keys: {', '.join(missing)}")

    output_directory = _expect(path, data, "output_directory", str, "a string path")
    if not output_directory.strip():
        raise ConfigParseError(path, "'output_directory' must not be empty")

    check_interval = _expect(path, data, "check_interval", int, "an integer number of seconds")
    if check_interval < 1:
        raise ConfigParseError(path, f"'check_interval' must be at least 1, got {check_interval}")

    settings = Settings(
        output_directory=output_directory,
        convert_to_mp4=_expect(path, data, "convert_to_mp4", bool, "true or false"),
        use_ffmpeg_convert=_expect(path, data, "use_ffmpeg_convert", bool, "true or false"),
        generate_contact_sheet=_expect(path, data, "generate_contact_sheet", bool, "true or false"),
        check_interval=check_interval,
    )

    # Optional keys keep their defaults when absent
    if "downloader" in data:
        settings.downloader = _expect(path, data, "downloader", str, "a string")
        if settings.downloader not in DOWNLOADERS:
            raise ConfigParseError(
                path, f"'downloader' must be one of {', '.join(DOWNLOADERS)}, got {settings.downloader!r}"
            )
    if "quality" in data:
        settings.quality = _expect(path, data, "quality", str, "a string")
    if "log_level" in data:
        settings.log_level = _expect(path, data, "log_level", str, "a string").upper()
        if settings.log_level not in LOG_LEVELS:
            raise ConfigParseError(path, f"'log_level' must be one of {', '.join(LOG_LEVELS)}")
    if "log_file" in data:
        settings.log_file = _expect(path, data, "log_file", str, "a string path")

    return settings


def dump_settings(settings: Settings) -> str:
    """Serialize settings in field order."""
    ordered = {f.name: getattr(settings, f.name) for f in fields(Settings)}
    return yaml.safe_dump(ordered, sort_keys=False, default_flow_style=False, allow_unicode=True)


def save(settings: Settings, config_path: Path) -> None:
    """Write settings to disk, creating parent directories."""
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        f.write(dump_settings(settings))


def load(config_path: Path) -> Settings:
    """
    Load settings from an existing file.

    Raises:
        ConfigParseError: If the file cannot be read, is not valid YAML
            or fails validation.
    """
    config_path = Path(config_path)
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise ConfigParseError(config_path, f"not valid UTF-8 text: {e}") from e
    except OSError as e:
        raise ConfigParseError(config_path, f"cannot read file: {e.strerror or e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigParseError(config_path, f"invalid YAML: {e}") from e

    return parse_settings(data, config_path)


def load_or_init(
    config_path: Optional[Path] = None,
    prompt: Callable[[str], str] = input
) -> Settings:
    """
    Load the config file, or create it on first run.

    On first run the user is asked for the output directory; every other
    setting gets its default. An existing file is never rewritten.

    Args:
        config_path: Path to the config file (default: per-user config dir).
        prompt: Function used to ask the user for input.

    Returns:
        Settings object.

    Raises:
        ConfigParseError: If the file is malformed, or the file or the
            output directory cannot be created.
    """
    logger = get_logger('config')
    config_path = Path(config_path) if config_path else default_config_path()

    if config_path.exists():
        logger.debug(f"Loading config from {config_path}")
        return load(config_path)

    answer = prompt("Enter the output folder path for recordings: ").strip()
    settings = Settings(output_directory=answer or default_output_directory())

    try:
        settings.output_path.mkdir(parents=True, exist_ok=True)
        save(settings, config_path)
    except OSError as e:
        raise ConfigParseError(config_path, f"cannot initialize: {e}") from e
    logger.info(f"Created config file: {config_path}")
    return settings

