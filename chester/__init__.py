"""
chester: track catalog and audio fetcher for a Discord music bot.

The bot plays audio from a local directory and describes every track in a
small SQLite catalog. This package owns both sides of that contract:

    Catalog (catalog/):
        - One row per YouTube video, with a user-facing title
        - Artists, origins and tags in lookup tables
        - Aliases mapping re-uploads onto a canonical track
        - Versioned migrations, each applied in one transaction
        - Batch import of per-track JSON records

    Fetching (fetch/):
        - Ensures <audio_directory>/<id>.<ext> exists for every
          catalogued track, downloading missing ones with yt-dlp
        - Sequential, or a bounded pool of worker threads
        - Failures are logged and reported, never retried

Modules:
    core/       - Configuration, logging, exceptions, progress bars
    catalog/    - Schema, migrations, catalog operations, importer
    fetch/      - yt-dlp downloader and the fetch driver
    utils/      - Link parsing and display helpers
    cli.py      - Command-line interface

Usage:
    Command Line:
        chester fetch --parallel
        chester add "https://youtu.be/dQw4w9WgXcQ" --artist "Rick Astley"
        chester tag add dQw4w9WgXcQ 80s
        chester library --sort artist

    Python API:
        from chester.core import load_config, setup_logging
        from chester.catalog import open_catalog
        from chester.fetch import Downloader, fetch_missing_audio

        config = load_config()
        setup_logging(config.output.log_directory)

        with open_catalog(config.database.path) as catalog:
            fetch_missing_audio(
                catalog, Downloader.from_config(config),
                parallel=True, jobs=config.download.jobs
            )

Dependencies:
    - yt-dlp: YouTube download and extraction
    - click: CLI framework
    - rich-click: CLI colors
    - rich: Progress bars and tables
    - tqdm: Progress-safe console logging
    - pyyaml: Configuration file parsing
"""

__version__ = "0.4.0"
__author__ = "chester"
__license__ = "MIT"

# Convenience imports for common usage
from chester.catalog import Catalog, Track, open_catalog
from chester.core import (
    ChesterError,
    Config,
    ConfigError,
    DatabaseError,
    DownloadError,
    DuplicateTrackError,
    MigrationError,
    TrackNotFoundError,
    get_logger,
    load_config,
    setup_logging,
)
from chester.fetch import Downloader, FetchStats, fetch_missing_audio

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "setup_logging",
    "get_logger",
    # Exceptions
    "ChesterError",
    "ConfigError",
    "DatabaseError",
    "MigrationError",
    "TrackNotFoundError",
    "DuplicateTrackError",
    "DownloadError",
    # Catalog
    "Catalog",
    "Track",
    "open_catalog",
    # Fetch
    "Downloader",
    "FetchStats",
    "fetch_missing_audio",
]
