"""
Track catalog for chester.

    - models: Track, LibraryRow and TrackRecord dataclasses
    - schema: Versioned, transactional schema migrations
    - database: Catalog handle with every catalog operation
    - importer: Batch import of per-track JSON records
"""

from chester.catalog.database import Catalog, open_catalog
from chester.catalog.importer import ImportStats, import_files
from chester.catalog.models import NO_ARTIST, NO_ORIGIN, LibraryRow, Track, TrackRecord
from chester.catalog.schema import LATEST_VERSION, MIGRATIONS, apply_migrations

__all__ = [
    "Catalog",
    "open_catalog",
    "ImportStats",
    "import_files",
    "Track",
    "TrackRecord",
    "LibraryRow",
    "NO_ARTIST",
    "NO_ORIGIN",
    "MIGRATIONS",
    "LATEST_VERSION",
    "apply_migrations",
]
