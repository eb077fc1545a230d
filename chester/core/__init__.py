"""
Core module for chester.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - logger: Logging system with console, file and failure-report outputs
    - progress: Rich progress bars for batch jobs

Usage:
    from chester.core import (
        Config, load_config,
        setup_logging, get_logger,
        ChesterError, ConfigError, DatabaseError
    )
"""

from chester.core.config import (
    Config,
    DatabaseConfig,
    DownloadConfig,
    OutputConfig,
    load_config,
)
from chester.core.exceptions import (
    ChesterError,
    ConfigError,
    DatabaseError,
    DownloadError,
    DuplicateTrackError,
    ImportRecordError,
    MigrationError,
    TrackNotFoundError,
)
from chester.core.logger import (
    get_logger,
    log_download_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "DatabaseConfig",
    "OutputConfig",
    "DownloadConfig",
    "load_config",
    # Exceptions
    "ChesterError",
    "ConfigError",
    "DatabaseError",
    "MigrationError",
    "TrackNotFoundError",
    "DuplicateTrackError",
    "DownloadError",
    "ImportRecordError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_download_failure",
    "shutdown_logging",
]
