"""
Versioned schema migrations for the chester catalog.

The catalog schema evolved in four steps. Each step is a Migration in the
ordered MIGRATIONS list and is applied exactly once, inside a single
`BEGIN IMMEDIATE ... COMMIT` transaction together with its row in
`schema_version`. A failing step is rolled back and surfaces as
MigrationError, leaving the file at the last fully applied version.

Steps inspect the live schema before acting, so a database created by
older tooling (no `schema_version` table at all) is adopted by replaying
the whole list from version 1: structures that already exist are left as
they are and only the missing transformations run.

Current shape (version 4):
    artists(id, artist UNIQUE)
    origins(id, origin UNIQUE)
    tracks(id, upload_date, yt_title, yt_channel, track_title,
           artist_id -> artists, origin_id -> origins)
    tags(id, tag UNIQUE)
    track_tags(track_id -> tracks CASCADE, tag_id -> tags CASCADE)
    track_aliases(track_id -> tracks CASCADE, alias_id)

Usage:
    conn = sqlite3.connect(path, isolation_level=None)
    applied = apply_migrations(conn)

The connection MUST be in autocommit mode (isolation_level=None) so that
transactions are controlled here and not by the sqlite3 module.
"""

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generator, Sequence

from chester.catalog.models import NO_ARTIST, NO_ORIGIN
from chester.core.exceptions import DatabaseError, MigrationError
from chester.core.logger import get_logger


logger = get_logger(__name__)


_VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""


@dataclass(frozen=True)
class Migration:
    """
    One forward-only schema step.

    Attributes:
        version: Position in the history, starting at 1.
        description: Short label stored in schema_version.
        apply: Callable running the step's statements on an open
               transaction. Must not commit.
    """
    version: int
    description: str
    apply: Callable[[sqlite3.Connection], None]


@contextmanager
def transaction(conn: sqlite3.Connection) -> Generator[sqlite3.Connection, None, None]:
    """
    Run a block inside an explicit write transaction.

    Commits on normal exit and rolls back on any exception, which is then
    re-raised.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


# =========================================================================
# Schema introspection
# =========================================================================

def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Column names of a table, empty if the table does not exist."""
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def current_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration version, 0 for a fresh or unversioned file."""
    if not table_exists(conn, "schema_version"):
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] or 0


# =========================================================================
# Migration steps
# =========================================================================

# Columns of the pre-normalization tracks table, in order
_LEGACY_TRACK_COLUMNS = (
    "id", "upload_date", "yt_title", "yt_channel",
    "track_title", "track_artist", "track_origin",
)


def _create_tracks(conn: sqlite3.Connection) -> None:
    if table_exists(conn, "tracks"):
        return
    conn.execute("""
        CREATE TABLE tracks (
            id TEXT PRIMARY KEY,
            upload_date TEXT NOT NULL,
            yt_title TEXT NOT NULL,
            yt_channel TEXT NOT NULL,
            track_title TEXT NOT NULL,
            track_artist TEXT NOT NULL,
            track_origin TEXT NOT NULL,
            tags TEXT NOT NULL  -- JSON array
        )
    """)


def _split_tags_and_aliases(conn: sqlite3.Connection) -> None:
    if not table_exists(conn, "track_tags"):
        conn.execute("""
            CREATE TABLE track_tags (
                track_id TEXT NOT NULL,
                tag TEXT NOT NULL,
                PRIMARY KEY (track_id, tag),
                FOREIGN KEY (track_id) REFERENCES tracks (id) ON DELETE CASCADE
            )
        """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS track_aliases (
            track_id TEXT NOT NULL,
            alias_id TEXT NOT NULL,
            PRIMARY KEY (track_id, alias_id),
            FOREIGN KEY (track_id) REFERENCES tracks (id) ON DELETE CASCADE
        )
    """)

    columns = table_columns(conn, "tracks")
    if "tags" not in columns:
        return

    # Copy the JSON tags out before the column goes away
    tag_rows = []
    for track_id, raw_tags in conn.execute("SELECT id, tags FROM tracks").fetchall():
        tags = json.loads(raw_tags) if raw_tags else []
        if not isinstance(tags, list):
            raise MigrationError(
                f"Track {track_id} has a non-list tags value: {raw_tags!r}",
                details={"track_id": track_id}
            )
        tag_rows.extend(
            (track_id, str(tag).strip()) for tag in tags if str(tag).strip()
        )

    if "tag" in table_columns(conn, "track_tags"):
        conn.executemany(
            "INSERT OR IGNORE INTO track_tags (track_id, tag) VALUES (?, ?)", tag_rows
        )
    else:
        # track_tags is already normalized; go through the tags table
        for track_id, tag in tag_rows:
            conn.execute("INSERT OR IGNORE INTO tags (tag) VALUES (?)", (tag,))
            conn.execute("""
                INSERT OR IGNORE INTO track_tags (track_id, tag_id)
                SELECT ?, id FROM tags WHERE tag = ?
            """, (track_id, tag))

    kept = [column for column in _LEGACY_TRACK_COLUMNS if column in columns]
    column_list = ", ".join(kept)
    conn.execute("""
        CREATE TABLE tracks_new (
            id TEXT PRIMARY KEY,
            upload_date TEXT NOT NULL,
            yt_title TEXT NOT NULL,
            yt_channel TEXT NOT NULL DEFAULT '',
            track_title TEXT NOT NULL,
            track_artist TEXT NOT NULL DEFAULT '',
            track_origin TEXT NOT NULL DEFAULT ''
        )
    """)
    conn.execute(f"INSERT INTO tracks_new ({column_list}) SELECT {column_list} FROM tracks")
    conn.execute("DROP TABLE tracks")
    conn.execute("ALTER TABLE tracks_new RENAME TO tracks")


def _normalize_tags(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS tags (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            tag TEXT NOT NULL UNIQUE
        )
    """)

    if "tag" not in table_columns(conn, "track_tags"):
        return

    conn.execute("INSERT OR IGNORE INTO tags (tag) SELECT DISTINCT tag FROM track_tags")
    conn.execute("""
        CREATE TABLE track_tags_new (
            track_id TEXT NOT NULL,
            tag_id INTEGER NOT NULL,
            PRIMARY KEY (track_id, tag_id),
            FOREIGN KEY (track_id) REFERENCES tracks (id) ON DELETE CASCADE,
            FOREIGN KEY (tag_id) REFERENCES tags (id) ON DELETE CASCADE
        )
    """)
    # Orphaned rows (track deleted without cascade) are dropped here
    conn.execute("""
        INSERT OR IGNORE INTO track_tags_new (track_id, tag_id)
        SELECT tt.track_id, t.id
        FROM track_tags tt
        JOIN tags t ON tt.tag = t.tag
        WHERE tt.track_id IN (SELECT id FROM tracks)
    """)
    conn.execute("DROP TABLE track_tags")
    conn.execute("ALTER TABLE track_tags_new RENAME TO track_tags")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_track_tags_tag_id ON track_tags (tag_id)")


def _normalize_artists_and_origins(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS artists (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            artist TEXT NOT NULL UNIQUE
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS origins (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            origin TEXT NOT NULL UNIQUE
        )
    """)
    ensure_sentinels(conn)

    columns = table_columns(conn, "tracks")
    if "track_artist" not in columns:
        # Normalized already; files written by the old import script lack yt_channel
        if "yt_channel" not in columns:
            conn.execute("ALTER TABLE tracks ADD COLUMN yt_channel TEXT NOT NULL DEFAULT ''")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_artist_id ON tracks (artist_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_origin_id ON tracks (origin_id)")
        return

    conn.execute("""
        INSERT OR IGNORE INTO artists (artist)
        SELECT DISTINCT TRIM(track_artist) FROM tracks
        WHERE TRIM(COALESCE(track_artist, '')) <> ''
    """)
    conn.execute("""
        INSERT OR IGNORE INTO origins (origin)
        SELECT DISTINCT TRIM(track_origin) FROM tracks
        WHERE TRIM(COALESCE(track_origin, '')) <> ''
    """)

    channel = "COALESCE(t.yt_channel, '')" if "yt_channel" in columns else "''"
    conn.execute("""
        CREATE TABLE tracks_new (
            id TEXT PRIMARY KEY,
            upload_date TEXT NOT NULL,
            yt_title TEXT NOT NULL,
            yt_channel TEXT NOT NULL DEFAULT '',
            track_title TEXT NOT NULL,
            artist_id INTEGER NOT NULL,
            origin_id INTEGER NOT NULL,
            FOREIGN KEY (artist_id) REFERENCES artists (id),
            FOREIGN KEY (origin_id) REFERENCES origins (id)
        )
    """)
    conn.execute(f"""
        INSERT INTO tracks_new (id, upload_date, yt_title, yt_channel, track_title, artist_id, origin_id)
        SELECT
            t.id, t.upload_date, t.yt_title, {channel}, t.track_title,
            (SELECT a.id FROM artists a
             WHERE a.artist = COALESCE(NULLIF(TRIM(t.track_artist), ''), ?)),
            (SELECT o.id FROM origins o
             WHERE o.origin = COALESCE(NULLIF(TRIM(t.track_origin), ''), ?))
        FROM tracks t
    """, (NO_ARTIST, NO_ORIGIN))
    conn.execute("DROP TABLE tracks")
    conn.execute("ALTER TABLE tracks_new RENAME TO tracks")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_artist_id ON tracks (artist_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_origin_id ON tracks (origin_id)")


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "create tracks", _create_tracks),
    Migration(2, "split tags and aliases", _split_tags_and_aliases),
    Migration(3, "normalize tags", _normalize_tags),
    Migration(4, "normalize artists and origins", _normalize_artists_and_origins),
)

LATEST_VERSION = MIGRATIONS[-1].version


# =========================================================================
# Runner
# =========================================================================

def ensure_sentinels(conn: sqlite3.Connection) -> None:
    """Insert the default artist and origin rows if they are missing."""
    conn.execute("INSERT OR IGNORE INTO artists (artist) VALUES (?)", (NO_ARTIST,))
    conn.execute("INSERT OR IGNORE INTO origins (origin) VALUES (?)", (NO_ORIGIN,))


def apply_migrations(
    conn: sqlite3.Connection,
    migrations: Sequence[Migration] = MIGRATIONS
) -> list[int]:
    """
    Bring the database up to the newest version in `migrations`.

    Args:
        conn: Autocommit connection (isolation_level=None).
        migrations: Ordered steps. Defaults to the catalog history.

    Returns:
        Versions applied by this call, in order. Empty when up to date.

    Raises:
        MigrationError: If the file is newer than the known history, or a
                        step fails (that step is rolled back).
    """
    conn.execute(_VERSION_TABLE_SQL)

    version = current_version(conn)
    _refuse_newer(version, migrations)

    applied = []
    for migration in migrations:
        if migration.version <= version:
            continue
        _apply_one(conn, migration)
        applied.append(migration.version)

    if applied:
        logger.info(f"Catalog schema migrated to version {applied[-1]}")

    if table_exists(conn, "artists") and table_exists(conn, "origins"):
        with transaction(conn):
            ensure_sentinels(conn)

    return applied


def check_current(
    conn: sqlite3.Connection,
    migrations: Sequence[Migration] = MIGRATIONS
) -> int:
    """
    Verify the database is at the newest version without writing to it.

    Returns:
        The current schema version.

    Raises:
        MigrationError: If the file is newer than the known history.
        DatabaseError: If migrations are pending.
    """
    version = current_version(conn)
    _refuse_newer(version, migrations)

    latest = migrations[-1].version if migrations else 0
    if version < latest:
        raise DatabaseError(
            f"Catalog schema version {version} is out of date (latest is {latest}), "
            f"run `chester migrate` first",
            details={"version": version, "latest": latest}
        )
    return version


def _refuse_newer(version: int, migrations: Sequence[Migration]) -> None:
    latest = migrations[-1].version if migrations else 0
    if version > latest:
        raise MigrationError(
            f"Database schema version {version} is newer than this release supports ({latest})",
            details={"version": version, "supported": latest}
        )


def _apply_one(conn: sqlite3.Connection, migration: Migration) -> None:
    label = f"Migration {migration.version} ({migration.description})"
    logger.debug(f"Applying {label}")

    # Has no effect inside a transaction, so toggle it around the step
    conn.execute("PRAGMA foreign_keys = OFF")
    try:
        with transaction(conn):
            migration.apply(conn)

            violations = conn.execute("PRAGMA foreign_key_check").fetchall()
            if violations:
                raise MigrationError(
                    f"{label} left {len(violations)} foreign key violation(s)",
                    details={
                        "version": migration.version,
                        "tables": sorted({row[0] for row in violations}),
                    }
                )

            conn.execute(
                "INSERT INTO schema_version (version, description, applied_at) VALUES (?, ?, ?)",
                (
                    migration.version,
                    migration.description,
                    datetime.now(timezone.utc).isoformat(),
                )
            )
    except MigrationError:
        raise
    except (sqlite3.Error, ValueError) as e:
        raise MigrationError(
            f"{label} failed: {e}",
            details={"version": migration.version, "original_error": str(e)}
        ) from e
    finally:
        conn.execute("PRAGMA foreign_keys = ON")
