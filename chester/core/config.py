"""
Configuration management for chester.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - Location of the SQLite catalog
    - Directory where fetched audio files are written
    - Optional directory for log files
    - Fetch settings: worker count, codec, quality, optional cookie file

Configuration File Location:
    config.yaml is looked up in the current working directory unless an
    explicit path is given with --config. A missing default file is not an
    error: every field has a default matching the bot's on-disk layout.

Example config.yaml:
    database:
      path: "database/metadata.sqlite3"

    output:
      audio_directory: "audio"
      log_directory: null  # Optional: defaults to <audio_directory>/logs

    download:
      jobs: 8
      codec: "mp3"
      quality: "5"
      cookie_file: null  # Optional: path to cookies.txt for restricted videos
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from yt_dlp.postprocessor.ffmpeg import ACODECS

from chester.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_DATABASE_PATH = "database/metadata.sqlite3"
DEFAULT_AUDIO_DIRECTORY = "audio"
DEFAULT_JOBS = 8
DEFAULT_CODEC = "mp3"
DEFAULT_QUALITY = "5"

# Codecs accepted by yt-dlp's FFmpegExtractAudio postprocessor
SUPPORTED_CODECS = tuple(ACODECS)


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Catalog location.

    Attributes:
        path: Absolute path to the SQLite file. The parent directory is
              created on first use.
    """
    path: Path


@dataclass(frozen=True)
class OutputConfig:
    """
    Output directory configuration.

    Attributes:
        audio_directory: Absolute path where `<track_id>.<ext>` files live.
        log_directory: Absolute path for run logs.
                       Defaults to {audio_directory}/logs if not specified.
    """
    audio_directory: Path
    log_directory: Path


@dataclass(frozen=True)
class DownloadConfig:
    """
    Fetch behavior configuration.

    Attributes:
        jobs: Maximum number of concurrent downloads in parallel mode.
              Default: 8.
        codec: Target audio codec for extraction. Default: "mp3".
        quality: Audio quality passed to FFmpeg ("0" best .. "10" worst for
                 VBR, or an explicit bitrate such as "192"). Default: "5".
        cookie_file: Optional cookies.txt exported from the browser, needed
                     for age-restricted or members-only videos.
    """
    jobs: int
    codec: str
    quality: str
    cookie_file: Path | None


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Catalog: {config.database.path}")
        print(f"Audio: {config.output.audio_directory}")
        print(f"Using {config.download.jobs} workers")
    """
    database: DatabaseConfig
    output: OutputConfig
    download: DownloadConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory
                     and falls back to defaults when it is absent.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is not found, the file has
                     invalid YAML syntax, or it contains invalid values.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        if explicit:
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        raw_config: Any = {}
    else:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                content = f.read()
        except IOError as e:
            raise ConfigError(
                f"Failed to read configuration file: {e}",
                details={"file_path": str(config_path), "original_error": str(e)}
            ) from e

        try:
            raw_config = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid YAML syntax in configuration file: {e}",
                details={"file_path": str(config_path), "original_error": str(e)}
            ) from e

        # An empty file parses to None
        if raw_config is None:
            raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return Config(
        database=_parse_database_config(_section(raw_config, "database")),
        output=_parse_output_config(_section(raw_config, "output")),
        download=_parse_download_config(_section(raw_config, "download")),
    )


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a config section, or an empty dict when it is absent."""
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _parse_path(section: dict[str, Any], key: str, field: str, default: str | None) -> Path | None:
    raw = section.get(key, default)
    if raw is None:
        return None
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(
            f"'{field}' must be a non-empty string",
            details={"field": field}
        )
    return Path(raw.strip()).expanduser().resolve()


def _parse_database_config(database_section: dict[str, Any]) -> DatabaseConfig:
    path = _parse_path(database_section, "path", "database.path", DEFAULT_DATABASE_PATH)
    return DatabaseConfig(path=path)


def _parse_output_config(output_section: dict[str, Any]) -> OutputConfig:
    """
    Parse and validate the output configuration section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directories (that happens at fetch time).
    """
    audio_dir = _parse_path(
        output_section, "audio_directory", "output.audio_directory", DEFAULT_AUDIO_DIRECTORY
    )
    log_dir = _parse_path(output_section, "log_directory", "output.log_directory", None)
    if log_dir is None:
        log_dir = audio_dir / "logs"

    return OutputConfig(audio_directory=audio_dir, log_directory=log_dir)


def _parse_download_config(download_section: dict[str, Any]) -> DownloadConfig:
    """
    Parse and validate the download configuration section.

    Applies defaults for fields that are not specified.

    Raises:
        ConfigError: If jobs is not a positive integer, codec is unknown,
                     or cookie_file is given but doesn't exist.
    """
    jobs = download_section.get("jobs", DEFAULT_JOBS)
    # bool is an int subclass; reject `jobs: true`
    if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1:
        raise ConfigError(
            "'download.jobs' must be a positive integer",
            details={"field": "download.jobs", "value": jobs}
        )

    codec = download_section.get("codec", DEFAULT_CODEC)
    if not isinstance(codec, str) or codec.strip().lower() not in SUPPORTED_CODECS:
        raise ConfigError(
            f"'download.codec' must be one of: {', '.join(SUPPORTED_CODECS)}",
            details={"field": "download.codec", "value": codec}
        )

    quality = download_section.get("quality", DEFAULT_QUALITY)
    if isinstance(quality, bool) or not isinstance(quality, (str, int)) or not str(quality).strip():
        raise ConfigError(
            "'download.quality' must be a string or integer",
            details={"field": "download.quality", "value": quality}
        )

    cookie_file = _parse_path(download_section, "cookie_file", "download.cookie_file", None)
    if cookie_file is not None and not cookie_file.exists():
        raise ConfigError(
            f"Cookie file not found: {cookie_file}",
            details={"field": "download.cookie_file", "path": str(cookie_file)}
        )

    return DownloadConfig(
        jobs=jobs,
        codec=codec.strip().lower(),
        quality=str(quality).strip(),
        cookie_file=cookie_file
    )
