"""
Exception classes for chester.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional details
dictionary, so the CLI can print the message and the logs can keep the context.

Exception Hierarchy:
    ChesterError (base)
        ConfigError - Configuration file issues
        DatabaseError - SQLite catalog issues
            MigrationError - A schema migration step failed (rolled back)
            TrackNotFoundError - Operation on an unknown track id
            DuplicateTrackError - Track id or alias already catalogued
        DownloadError - Audio download issues (per track, non-critical)
        ImportRecordError - A batch import record is malformed
"""


class ChesterError(Exception):
    """
    Base exception for all chester errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all chester errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., track id, path).

    Example:
        try:
            catalog.set_title("dQw4w9WgXcQ", "Never Gonna Give You Up")
        except ChesterError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'track_id': Video ID involved in the error
                     - 'path': File involved in the error
                     - 'version': Schema version involved in the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(ChesterError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Explicit --config path does not exist
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., non-positive job count, unknown codec)
    """
    pass


class DatabaseError(ChesterError):
    """
    Raised when there's an issue with the SQLite catalog.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Parent directory of the database file does not exist
        - Database file is not a SQLite database
        - Schema version newer than this release understands
    """
    pass


class MigrationError(DatabaseError):
    """
    Raised when a schema migration step fails.

    The step's transaction has been rolled back when this is raised, so the
    database is left at the last fully applied version.

    Example:
        raise MigrationError(
            "Migration 3 (normalize tags) failed: no such table: track_tags",
            details={'version': 3}
        )
    """
    pass


class TrackNotFoundError(DatabaseError):
    """Raised when an operation names a track id that is not catalogued."""

    def __init__(self, track_id: str) -> None:
        super().__init__(
            f"The track `{track_id}` could not be found in the database.",
            details={"track_id": track_id}
        )
        self.track_id = track_id


class DuplicateTrackError(DatabaseError):
    """
    Raised when adding a track (or alias) whose id is already catalogued.

    Attributes:
        existing_id: The canonical track id the duplicate resolves to.
    """

    def __init__(self, track_id: str, existing_id: str, title: str | None = None) -> None:
        if title:
            message = f"This track exists in the database already as `{title}`."
        else:
            message = f"`{track_id}` is already catalogued as `{existing_id}`."
        super().__init__(
            message,
            details={"track_id": track_id, "existing_id": existing_id}
        )
        self.existing_id = existing_id


class DownloadError(ChesterError):
    """
    Raised when there's an issue downloading audio from YouTube.

    This is a NON-CRITICAL error - the fetch driver logs it and continues
    with the next track.

    Common causes:
        - Video unavailable, private or removed
        - yt-dlp extraction failed
        - FFmpeg conversion failed
        - Disk full or permission denied

    Example:
        raise DownloadError(
            "yt-dlp error: Video unavailable",
            details={'track_id': 'dQw4w9WgXcQ'}
        )
    """
    pass


class ImportRecordError(ChesterError):
    """
    Raised when a batch import record cannot be parsed.

    NON-CRITICAL: the importer logs the file and moves on.
    """
    pass
