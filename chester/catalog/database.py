"""
Thread-safe SQLite catalog of track metadata.

One row per YouTube video in `tracks`, with artists, origins and tags kept
in lookup tables and aliases mapping re-uploads onto a canonical track.
The schema is brought up to date by chester.catalog.schema when the
catalog is opened.

Every public method resolves its track argument through the alias table,
so an alias id can be used anywhere a track id is accepted.

Usage:
    with open_catalog(config.database.path) as catalog:
        catalog.add_track("dQw4w9WgXcQ", "20091025", yt_title, channel, "Never Gonna")
        catalog.add_tag("dQw4w9WgXcQ", "80s")

        for row in catalog.list_tracks(sort="artist"):
            print(row.title, row.artist)
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterable

from chester.catalog.models import NO_ARTIST, NO_ORIGIN, LibraryRow, Track, TrackRecord
from chester.catalog.schema import apply_migrations, check_current, current_version, transaction
from chester.core.exceptions import DatabaseError, DuplicateTrackError, TrackNotFoundError
from chester.core.logger import get_logger
from chester.utils import join_display


logger = get_logger(__name__)

AUTOCOMPLETE_MAX_CHOICES = 25
AUTOCOMPLETE_MAX_LENGTH = 100

# field -> (table, column)
LABEL_TABLES = {
    "tag": ("tags", "tag"),
    "artist": ("artists", "artist"),
    "origin": ("origins", "origin"),
}

_LIBRARY_ORDER = {
    "title": "t.track_title COLLATE NOCASE, t.id",
    "artist": "a.artist COLLATE NOCASE, t.track_title COLLATE NOCASE, t.id",
    "origin": "o.origin COLLATE NOCASE, t.track_title COLLATE NOCASE, t.id",
    "tags": "t.track_title COLLATE NOCASE, t.id",
}

LIBRARY_SORT_KEYS = tuple(_LIBRARY_ORDER)

_TAG_SEPARATOR = "\x1f"


class Catalog:
    """
    Thread-safe handle on the track catalog.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing. The connection
    runs in autocommit mode; writes are grouped with explicit transactions.

    With read_only=True the file must already exist at the latest schema
    version. It is opened with SQLite's `mode=ro` and never migrated, so
    listing commands cannot create or modify it.
    """

    def __init__(self, db_path: Path, read_only: bool = False) -> None:
        self.db_path = db_path
        self.read_only = read_only
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )
        if read_only and not db_path.is_file():
            raise DatabaseError(
                f"Catalog not found: {db_path}",
                details={"path": str(db_path)}
            )

        try:
            with self._get_connection() as conn:
                if read_only:
                    check_current(conn)
                    self.applied_migrations: list[int] = []
                else:
                    self.applied_migrations = apply_migrations(conn)
        except sqlite3.Error as e:
            self.close()
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e
        except DatabaseError:
            self.close()
            raise

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        """
        if self._conn is None:
            if self.read_only:
                target, uri = self.db_path.resolve().as_uri() + "?mode=ro", True
            else:
                target, uri = str(self.db_path), False
            self._conn = sqlite3.connect(
                target,
                timeout=30.0,
                isolation_level=None,
                check_same_thread=False,  # We handle thread safety with _lock
                uri=uri
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if not self.read_only:
                self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    def close(self) -> None:
        """Close the database connection. Safe to call multiple times."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "Catalog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def schema_version(self) -> int:
        with self._lock:
            with self._get_connection() as conn:
                return current_version(conn)

    # =========================================================================
    # Internal helpers (caller holds the lock)
    # =========================================================================

    def _resolve(self, conn: sqlite3.Connection, track_id: str) -> str | None:
        row = conn.execute("SELECT id FROM tracks WHERE id = ?", (track_id,)).fetchone()
        if row:
            return row[0]
        row = conn.execute(
            "SELECT track_id FROM track_aliases WHERE alias_id = ?", (track_id,)
        ).fetchone()
        return row[0] if row else None

    def _require_track(self, conn: sqlite3.Connection, track_id: str) -> str:
        resolved = self._resolve(conn, track_id)
        if resolved is None:
            raise TrackNotFoundError(track_id)
        return resolved

    def _label_id(self, conn: sqlite3.Connection, field: str, value: str) -> int:
        table, column = _label_table(field)
        conn.execute(f"INSERT OR IGNORE INTO {table} ({column}) VALUES (?)", (value,))
        row = conn.execute(f"SELECT id FROM {table} WHERE {column} = ?", (value,)).fetchone()
        return row[0]

    def _link_tags(self, conn: sqlite3.Connection, track_id: str, tags: Iterable[str]) -> int:
        added = 0
        for tag in tags:
            tag_id = self._label_id(conn, "tag", tag)
            cursor = conn.execute(
                "INSERT OR IGNORE INTO track_tags (track_id, tag_id) VALUES (?, ?)",
                (track_id, tag_id)
            )
            added += cursor.rowcount
        return added

    def _fetch_track(self, conn: sqlite3.Connection, track_id: str) -> Track | None:
        row = conn.execute("""
            SELECT t.id, t.upload_date, t.yt_title, t.yt_channel, t.track_title,
                   a.artist, o.origin
            FROM tracks t
            JOIN artists a ON a.id = t.artist_id
            JOIN origins o ON o.id = t.origin_id
            WHERE t.id = ?
        """, (track_id,)).fetchone()
        if row is None:
            return None

        tags = [r[0] for r in conn.execute("""
            SELECT tg.tag FROM track_tags tt
            JOIN tags tg ON tg.id = tt.tag_id
            WHERE tt.track_id = ?
            ORDER BY tg.tag COLLATE NOCASE
        """, (track_id,))]
        aliases = [r[0] for r in conn.execute(
            "SELECT alias_id FROM track_aliases WHERE track_id = ? ORDER BY alias_id",
            (track_id,)
        )]

        return Track(
            id=row["id"],
            upload_date=row["upload_date"],
            yt_title=row["yt_title"],
            yt_channel=row["yt_channel"],
            track_title=row["track_title"],
            artist=row["artist"],
            origin=row["origin"],
            tags=tuple(tags),
            aliases=tuple(aliases),
        )

    # =========================================================================
    # Tracks
    # =========================================================================

    def add_track(
        self,
        video_id: str,
        upload_date: str,
        yt_title: str,
        yt_channel: str,
        track_title: str,
        artist: str | None = None,
        origin: str | None = None,
        tags: Iterable[str] = ()
    ) -> Track:
        """
        Insert a new track.

        Missing or blank artist/origin fall back to the sentinel rows, and
        lookup rows for new labels are created on demand.

        Returns:
            The stored Track.

        Raises:
            DuplicateTrackError: If the id (or an alias of it) is catalogued.
        """
        artist = _clean(artist) or NO_ARTIST
        origin = _clean(origin) or NO_ORIGIN
        tags = [tag for tag in (_clean(t) for t in tags) if tag]

        with self._lock:
            with self._get_connection() as conn:
                existing = self._resolve(conn, video_id)
                if existing is not None:
                    row = conn.execute(
                        "SELECT track_title FROM tracks WHERE id = ?", (existing,)
                    ).fetchone()
                    raise DuplicateTrackError(video_id, existing, title=row[0])

                with transaction(conn):
                    conn.execute("""
                        INSERT INTO tracks (
                            id, upload_date, yt_title, yt_channel, track_title,
                            artist_id, origin_id
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, (
                        video_id, upload_date, yt_title, yt_channel or "", track_title,
                        self._label_id(conn, "artist", artist),
                        self._label_id(conn, "origin", origin),
                    ))
                    self._link_tags(conn, video_id, tags)

                logger.debug(f"Added track {video_id} ({track_title})")
                return self._fetch_track(conn, video_id)

    def import_record(self, record: TrackRecord) -> bool:
        """
        Apply one batch-import record in a single transaction.

        The track is inserted if absent; an existing track (or alias) keeps
        its metadata. Tags are merged either way.

        Returns:
            True if the track was inserted, False if it already existed.
        """
        with self._lock:
            with self._get_connection() as conn:
                try:
                    return self._apply_record(conn, record)
                except sqlite3.Error as e:
                    raise DatabaseError(
                        f"Failed to import {record.id}: {e}",
                        details={"track_id": record.id}
                    ) from e

    def _apply_record(self, conn: sqlite3.Connection, record: TrackRecord) -> bool:
        with transaction(conn):
            existing = self._resolve(conn, record.id)
            if existing is None:
                conn.execute("""
                    INSERT INTO tracks (
                        id, upload_date, yt_title, yt_channel, track_title,
                        artist_id, origin_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.id, record.upload_date, record.yt_title,
                    record.yt_channel, record.track_title,
                    self._label_id(conn, "artist", record.artist),
                    self._label_id(conn, "origin", record.origin),
                ))
            self._link_tags(conn, existing or record.id, record.tags)
        return existing is None

    def get_track(self, track_id: str) -> Track | None:
        """Get a track by id or alias, with its artist, origin, tags and aliases."""
        with self._lock:
            with self._get_connection() as conn:
                resolved = self._resolve(conn, track_id)
                if resolved is None:
                    return None
                return self._fetch_track(conn, resolved)

    def get_all_track_ids(self) -> list[str]:
        with self._lock:
            with self._get_connection() as conn:
                return [row[0] for row in conn.execute("SELECT id FROM tracks ORDER BY id")]

    def resolve(self, track_id: str) -> str | None:
        """Canonical track id for a track id or alias, None if unknown."""
        with self._lock:
            with self._get_connection() as conn:
                return self._resolve(conn, track_id)

    def set_title(self, track_id: str, title: str) -> None:
        title = _clean(title)
        if not title:
            raise ValueError("Track title must not be empty")

        with self._lock:
            with self._get_connection() as conn:
                resolved = self._require_track(conn, track_id)
                conn.execute(
                    "UPDATE tracks SET track_title = ? WHERE id = ?", (title, resolved)
                )

    def set_artist(self, track_id: str, artist: str | None) -> None:
        """Set the artist; None or blank restores the sentinel."""
        self._set_label(track_id, "artist", _clean(artist) or NO_ARTIST)

    def set_origin(self, track_id: str, origin: str | None) -> None:
        """Set the origin; None or blank restores the sentinel."""
        self._set_label(track_id, "origin", _clean(origin) or NO_ORIGIN)

    def _set_label(self, track_id: str, field: str, value: str) -> None:
        with self._lock:
            with self._get_connection() as conn:
                resolved = self._require_track(conn, track_id)
                with transaction(conn):
                    label_id = self._label_id(conn, field, value)
                    conn.execute(
                        f"UPDATE tracks SET {field}_id = ? WHERE id = ?", (label_id, resolved)
                    )

    def delete_track(self, track_id: str) -> bool:
        """
        Delete a track with its tag associations and aliases.

        Tags, artists and origins themselves are kept.

        Returns:
            True if a track was deleted, False if it was not catalogued.
        """
        with self._lock:
            with self._get_connection() as conn:
                resolved = self._resolve(conn, track_id)
                if resolved is None:
                    return False
                conn.execute("DELETE FROM tracks WHERE id = ?", (resolved,))
                logger.debug(f"Deleted track {resolved}")
                return True

    # =========================================================================
    # Tags and aliases
    # =========================================================================

    def add_tag(self, track_id: str, tag: str) -> bool:
        """
        Tag a track. Idempotent.

        Returns:
            True if the association is new, False if it already existed.
        """
        tag = _clean(tag)
        if not tag:
            raise ValueError("Tag must not be empty")

        with self._lock:
            with self._get_connection() as conn:
                resolved = self._require_track(conn, track_id)
                with transaction(conn):
                    return self._link_tags(conn, resolved, [tag]) > 0

    def reset_tags(self, track_id: str) -> int:
        """Remove every tag from a track. Returns the number removed."""
        with self._lock:
            with self._get_connection() as conn:
                resolved = self._require_track(conn, track_id)
                cursor = conn.execute("DELETE FROM track_tags WHERE track_id = ?", (resolved,))
                return cursor.rowcount

    def add_alias(self, track_id: str, alias_id: str) -> bool:
        """
        Map an alternate video id onto a catalogued track.

        Returns:
            True if the alias was added, False if it already pointed at this track.

        Raises:
            TrackNotFoundError: If track_id is unknown.
            DuplicateTrackError: If alias_id is itself a catalogued track, or
                                 already an alias of a different track.
        """
        alias_id = _clean(alias_id)
        if not alias_id:
            raise ValueError("Alias id must not be empty")

        with self._lock:
            with self._get_connection() as conn:
                resolved = self._require_track(conn, track_id)
                existing = self._resolve(conn, alias_id)
                if existing == resolved and alias_id != resolved:
                    return False
                if existing is not None:
                    raise DuplicateTrackError(alias_id, existing)

                conn.execute(
                    "INSERT INTO track_aliases (track_id, alias_id) VALUES (?, ?)",
                    (resolved, alias_id)
                )
                return True

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_or_create_label(self, field: str, value: str) -> int:
        """Row id of a tag, artist or origin label, inserting it if new."""
        value = _clean(value)
        if not value:
            raise ValueError(f"{field} must not be empty")

        with self._lock:
            with self._get_connection() as conn:
                with transaction(conn):
                    return self._label_id(conn, field, value)

    def suggest(self, field: str, partial: str, limit: int = AUTOCOMPLETE_MAX_CHOICES) -> list[str]:
        """
        Case-insensitive autocomplete over tags, artists or origins.

        Values containing `partial` are returned, those starting with it
        first, then alphabetically. An empty `partial` lists everything.
        """
        table, column = _label_table(field)
        needle = _escape_like(partial.strip().lower())

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(f"""
                    SELECT {column} FROM {table}
                    WHERE LOWER({column}) LIKE ? ESCAPE '\\'
                    ORDER BY LOWER({column}) LIKE ? ESCAPE '\\' DESC, {column} COLLATE NOCASE
                    LIMIT ?
                """, (f"%{needle}%", f"{needle}%", limit))
                return [row[0] for row in cursor]

    def search_tracks(
        self,
        partial: str,
        limit: int = AUTOCOMPLETE_MAX_CHOICES,
        width: int = AUTOCOMPLETE_MAX_LENGTH
    ) -> list[tuple[str, str]]:
        """
        Track autocomplete: match `partial` against title, artist, origin or tag.

        Returns:
            (display, track_id) pairs sorted by display, where display is
            "title | artist | origin | tags" fitted into `width` characters.
        """
        needle = _escape_like(partial.strip().lower())

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT t.id, t.track_title, a.artist, o.origin,
                           (SELECT GROUP_CONCAT(tag, ', ') FROM (
                                SELECT tg.tag FROM track_tags tt
                                JOIN tags tg ON tg.id = tt.tag_id
                                WHERE tt.track_id = t.id
                                ORDER BY tg.tag COLLATE NOCASE
                           )) AS tags
                    FROM tracks t
                    JOIN artists a ON a.id = t.artist_id
                    JOIN origins o ON o.id = t.origin_id
                    WHERE LOWER(t.track_title) LIKE :needle ESCAPE '\\'
                       OR LOWER(a.artist) LIKE :needle ESCAPE '\\'
                       OR LOWER(o.origin) LIKE :needle ESCAPE '\\'
                       OR EXISTS (
                           SELECT 1 FROM track_tags tt
                           JOIN tags tg ON tg.id = tt.tag_id
                           WHERE tt.track_id = t.id AND LOWER(tg.tag) LIKE :needle ESCAPE '\\'
                       )
                    ORDER BY t.track_title COLLATE NOCASE
                    LIMIT :limit
                """, {"needle": f"%{needle}%", "limit": limit})
                choices = [
                    (
                        join_display(
                            [row["track_title"], row["artist"], row["origin"], row["tags"] or "No tags"],
                            width
                        ),
                        row["id"],
                    )
                    for row in cursor
                ]

        return sorted(choices)

    def list_tracks(self, sort: str = "title") -> list[LibraryRow]:
        """
        Library listing, one row per track.

        Args:
            sort: One of "title", "artist", "origin" or "tags".
        """
        if sort not in _LIBRARY_ORDER:
            raise ValueError(f"Unknown sort key: {sort}")

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(f"""
                    SELECT t.id, t.track_title, a.artist, o.origin,
                           GROUP_CONCAT(tg.tag, char(31)) AS tags
                    FROM tracks t
                    JOIN artists a ON a.id = t.artist_id
                    JOIN origins o ON o.id = t.origin_id
                    LEFT JOIN track_tags tt ON tt.track_id = t.id
                    LEFT JOIN tags tg ON tg.id = tt.tag_id
                    GROUP BY t.id
                    ORDER BY {_LIBRARY_ORDER[sort]}
                """)
                rows = [
                    LibraryRow(
                        track_id=row["id"],
                        title=row["track_title"],
                        artist=row["artist"],
                        origin=row["origin"],
                        tags=tuple(sorted(
                            row["tags"].split(_TAG_SEPARATOR) if row["tags"] else [],
                            key=str.lower
                        )),
                    )
                    for row in cursor
                ]

        if sort == "tags":
            # Untagged tracks last
            rows.sort(key=lambda r: (not r.tags, [t.lower() for t in r.tags]))
        return rows

    def stats(self) -> dict[str, int]:
        """Counts of tracks, artists, origins, tags and aliases (sentinels excluded)."""
        with self._lock:
            with self._get_connection() as conn:
                def count(sql: str, params: tuple = ()) -> int:
                    return conn.execute(sql, params).fetchone()[0]

                return {
                    "tracks": count("SELECT COUNT(*) FROM tracks"),
                    "artists": count("SELECT COUNT(*) FROM artists WHERE artist <> ?", (NO_ARTIST,)),
                    "origins": count("SELECT COUNT(*) FROM origins WHERE origin <> ?", (NO_ORIGIN,)),
                    "tags": count("SELECT COUNT(*) FROM tags"),
                    "aliases": count("SELECT COUNT(*) FROM track_aliases"),
                }


@contextmanager
def open_catalog(db_path: Path, read_only: bool = False) -> Generator[Catalog, None, None]:
    """
    Open (and migrate) the catalog, closing it on every exit path.

    The parent directory of db_path is created if needed, unless read_only
    is set (see Catalog).
    """
    if not read_only:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    catalog = Catalog(db_path, read_only=read_only)
    try:
        yield catalog
    finally:
        catalog.close()


def _label_table(field: str) -> tuple[str, str]:
    try:
        return LABEL_TABLES[field]
    except KeyError:
        raise ValueError(
            f"Unknown label field '{field}', expected one of: {', '.join(LABEL_TABLES)}"
        ) from None


def _clean(value: str | None) -> str:
    return value.strip() if value else ""


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
