"""
Logging configuration for chester.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible, colored formatting
    - log_full_<timestamp>.log: Complete log of all events (DEBUG and above)
    - log_errors_<timestamp>.log: Only ERROR and CRITICAL level messages
    - download_failures_<timestamp>.log: Track ids whose fetch failed, with
      their YouTube URLs, ready to be retried by hand

The logging system follows the principle: everything to screen is also saved
to file, then filtered into specialized files.

Log File Locations:
    All log files are created in the log directory from config.yaml
    (default: <audio_directory>/logs). Each run gets its own timestamped files.

Usage:
    from chester.core.logger import setup_logging, get_logger

    setup_logging(log_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Starting fetch")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log file name prefixes (created in the log directory)
LOG_FULL_PREFIX = "log_full"
LOG_ERRORS_PREFIX = "log_errors"
DOWNLOAD_FAILURES_PREFIX = "download_failures"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log format for console output (compact, tqdm-friendly)
CONSOLE_LOG_FORMAT = "%(levelname)s: %(message)s"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level name on console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking progress bars.

    Uses tqdm.write(), which coordinates with any active bar so messages
    appear above it instead of tearing it.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class DownloadFailedTrackHandler(logging.Handler):
    """
    Handler that captures fetch failures for the download report file.

    It listens for log records carrying track failure information and writes
    them to download_failures_<timestamp>.log in a simple format:

        dQw4w9WgXcQ
        https://www.youtube.com/watch?v=dQw4w9WgXcQ

        9bZkp7q19f0
        https://www.youtube.com/watch?v=9bZkp7q19f0

    The handler looks for specific extra fields in log records:
        - 'download_failed_track_id': The track id that failed
        - 'download_failed_track_url': The YouTube URL

    Only records containing these fields are written to the report.
    Writes happen under the handler lock, so worker threads may log freely.
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "download_failed_track_id"):
            return

        if self.report_file is None:
            return

        try:
            track_id = getattr(record, "download_failed_track_id", "unknown")
            url = getattr(record, "download_failed_track_url", "")
            self.report_file.write(f"{track_id}\n")
            self.report_file.write(f"{url}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """
        Close the report file handle.

        Called automatically when logging is shut down.
        Safe to call multiple times.
        """
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path | None, console_level: int = logging.INFO) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory where log files will be created.
                 Created if it doesn't exist. None logs to the console only
                 (used by read-only commands).
        console_level: Minimum level shown on the console.

    Behavior:
        1. Configure root logger level to DEBUG
        2. Console handler (TqdmLoggingHandler), colored, console_level
        3. Stop here if log_dir is None
        4. Create log_dir and a timestamp for this run's log files
        5. Full log file handler, DEBUG, timestamped format
        6. Error log file handler, filtered to ERROR+ by ErrorOnlyFilter
        7. Download failures handler

    Thread Safety:
        This function is NOT thread-safe. Call it once from the main
        thread before starting any worker threads.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    # yt-dlp and urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    full_handler = logging.FileHandler(
        log_dir / f"{LOG_FULL_PREFIX}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(
        log_dir / f"{LOG_ERRORS_PREFIX}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    download_handler = DownloadFailedTrackHandler(
        log_dir / f"{DOWNLOAD_FAILURES_PREFIX}_{timestamp}.log"
    )
    download_handler.open()
    root_logger.addHandler(download_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Thin wrapper around logging.getLogger() so every module names its
    logger the same way (`get_logger(__name__)`).

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def format_fetch_summary(downloaded: int, skipped: int, failed: int) -> str:
    """Format the end-of-batch summary line with colors."""
    return (
        f"Fetch complete: {Colors.GREEN}{downloaded} downloaded{Colors.RESET}, "
        f"{skipped} skipped, "
        f"{Colors.RED}{failed} failed{Colors.RESET}"
    )


def log_download_failure(
    logger: logging.Logger,
    track_id: str,
    url: str,
    error_message: str
) -> None:
    """
    Log a track whose download failed.

    Logs an ERROR with the correct extra fields for the
    DownloadFailedTrackHandler to pick up.

    Args:
        logger: The logger to use for the message.
        track_id: The video id that failed.
        url: The YouTube URL that was requested.
        error_message: Description of why the download failed.

    Example:
        log_download_failure(
            logger,
            track_id="dQw4w9WgXcQ",
            url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            error_message="Video unavailable"
        )
    """
    logger.error(
        f"Failed to download {track_id}: {error_message}",
        extra={
            "download_failed_track_id": track_id,
            "download_failed_track_url": url,
        }
    )


def shutdown_logging() -> None:
    """
    Flush, close and detach every handler on the root logger.

    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
