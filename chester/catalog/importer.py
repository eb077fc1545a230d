"""
Batch importer for per-track JSON records.

Each file holds one JSON object describing a track (see TrackRecord).
Records are applied one at a time, each in its own transaction:

    1. Lookup rows for artist, origin and tags are created on demand
    2. The track is inserted if it is not catalogued yet
       (existing tracks keep their metadata)
    3. Tag associations are merged

A file that cannot be read or parsed is logged and skipped; the import
carries on with the next file.

Usage:
    from chester.catalog.importer import import_files

    with open_catalog(db_path) as catalog:
        stats = import_files(catalog, sorted(Path("json").glob("*.json")))
    print(f"Imported {stats.imported}/{stats.total}")
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from chester.catalog.database import Catalog
from chester.catalog.models import TrackRecord
from chester.core.exceptions import DatabaseError, ImportRecordError
from chester.core.logger import get_logger
from chester.core.progress import ImportProgressBar

logger = get_logger(__name__)


@dataclass
class ImportStats:
    """
    Statistics from an import batch.

    Attributes:
        total: Number of files given.
        imported: Records whose track was newly inserted.
        skipped: Records whose track already existed (tags still merged).
        failed: Files that could not be read, parsed or applied.
    """

    total: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0


def load_record(path: Path) -> TrackRecord:
    """
    Read and validate one import file.

    Raises:
        ImportRecordError: If the file is unreadable, not JSON, or not a
                           valid track record.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ImportRecordError(
            f"Failed to read {path}: {e}",
            details={"path": str(path)}
        ) from e
    except json.JSONDecodeError as e:
        raise ImportRecordError(
            f"Invalid JSON in {path}: {e}",
            details={"path": str(path)}
        ) from e

    return TrackRecord.from_dict(data)


def import_files(
    catalog: Catalog,
    paths: Sequence[Path],
    show_progress: bool = True
) -> ImportStats:
    """
    Import every file in `paths` into the catalog.

    Args:
        catalog: Open catalog handle.
        paths: JSON files, one track record each.
        show_progress: Display a Rich progress bar.

    Returns:
        ImportStats with per-outcome counts.
    """
    stats = ImportStats(total=len(paths))

    if not paths:
        logger.info("No files to import")
        return stats

    logger.info(f"Importing {len(paths)} track record(s)")

    with ImportProgressBar(total=len(paths), disable=not show_progress) as progress:
        for path in paths:
            try:
                record = load_record(path)
                inserted = catalog.import_record(record)
            except ImportRecordError as e:
                stats.failed += 1
                progress.update(imported=False)
                logger.error(f"Skipping {path.name}: {e.message}")
                continue
            except DatabaseError as e:
                stats.failed += 1
                progress.update(imported=False)
                logger.error(f"Failed to import {path.name}: {e.message}")
                continue

            if inserted:
                stats.imported += 1
                logger.debug(f"Imported {record.id} ({record.track_title})")
            else:
                stats.skipped += 1
                logger.debug(f"{record.id} already catalogued, merged tags")
            progress.update(imported=inserted, skipped=not inserted)

    logger.info(
        f"Import complete: {stats.imported} imported, "
        f"{stats.skipped} already present, {stats.failed} failed"
    )
    return stats
