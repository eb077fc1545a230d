# tests/test_catalog.py
"""Test catalog operations"""

import sqlite3

import pytest

from chester.catalog import Catalog, LATEST_VERSION, open_catalog
from chester.catalog.models import NO_ARTIST, NO_ORIGIN, TrackRecord
from chester.catalog.schema import MIGRATIONS, apply_migrations
from chester.core.exceptions import (
    DatabaseError,
    DuplicateTrackError,
    MigrationError,
    TrackNotFoundError,
)


class TestOpening:
    """Test catalog lifecycle"""

    def test_missing_parent_directory(self, temp_dir):
        """Test Catalog refuses a path whose directory does not exist"""
        with pytest.raises(DatabaseError, match="Parent directory"):
            Catalog(temp_dir / "nope" / "metadata.sqlite3")

    def test_open_catalog_creates_directory(self, db_path):
        """Test open_catalog creates the database directory"""
        with open_catalog(db_path) as catalog:
            assert catalog.schema_version == LATEST_VERSION
            assert catalog.applied_migrations == [1, 2, 3, 4]
        assert db_path.exists()

    def test_reopen_applies_nothing(self, db_path):
        """Test a migrated file is opened as is"""
        with open_catalog(db_path):
            pass
        with open_catalog(db_path) as catalog:
            assert catalog.applied_migrations == []

    def test_close_is_idempotent(self, db_path):
        """Test close can be called more than once"""
        db_path.parent.mkdir(parents=True)
        catalog = Catalog(db_path)
        catalog.close()
        catalog.close()


class TestReadOnly:
    """Test opening the catalog without writing to it"""

    def test_missing_file_is_refused(self, db_path):
        """Test a missing catalog raises and nothing is created"""
        with pytest.raises(DatabaseError, match="Catalog not found"):
            with open_catalog(db_path, read_only=True):
                pass

        assert not db_path.parent.exists()

    def test_stale_schema_is_refused(self, db_path):
        """Test a file with pending migrations raises and is left untouched"""
        db_path.parent.mkdir(parents=True)
        conn = sqlite3.connect(str(db_path), isolation_level=None)
        apply_migrations(conn, MIGRATIONS[:2])
        conn.close()
        before = db_path.read_bytes()

        with pytest.raises(DatabaseError, match="chester migrate"):
            with open_catalog(db_path, read_only=True):
                pass

        assert db_path.read_bytes() == before

    def test_newer_schema_is_refused(self, db_path):
        """Test a file from a newer release raises MigrationError"""
        with open_catalog(db_path):
            pass
        conn = sqlite3.connect(str(db_path), isolation_level=None)
        conn.execute("INSERT INTO schema_version VALUES (9, 'future', '2030-01-01')")
        conn.close()

        with pytest.raises(MigrationError, match="newer"):
            with open_catalog(db_path, read_only=True):
                pass

    def test_current_file_is_read_unchanged(self, db_path):
        """Test reads work and the file bytes stay the same"""
        with open_catalog(db_path) as catalog:
            catalog.add_track("abc", "20200101", "Some Video", "Some Channel",
                              "Some Title", tags=["games"])
        before = db_path.read_bytes()

        with open_catalog(db_path, read_only=True) as catalog:
            assert catalog.applied_migrations == []
            assert catalog.get_all_track_ids() == ["abc"]
            assert catalog.get_track("abc").tags == ("games",)

        assert db_path.read_bytes() == before


class TestTracks:
    """Test adding, reading, editing and deleting tracks"""

    def test_add_track_defaults(self, catalog):
        """Test missing artist/origin become the sentinels"""
        track = catalog.add_track(
            "abc", "20200101", "Some Video", "Some Channel", "Some Title"
        )

        assert track.id == "abc"
        assert track.artist == NO_ARTIST
        assert track.origin == NO_ORIGIN
        assert track.tags == ()
        assert track.aliases == ()
        assert track.display_name == "Some Title"
        assert track.url == "https://www.youtube.com/watch?v=abc"

    def test_add_track_with_labels(self, catalog):
        """Test labels are stripped and tags de-duplicated"""
        track = catalog.add_track(
            "abc", "20200101", "Some Video", "Some Channel", "Some Title",
            artist="  Queen ", origin="", tags=[" rock", "rock", "", "Live"]
        )

        assert track.artist == "Queen"
        assert track.origin == NO_ORIGIN
        assert track.tags == ("Live", "rock")
        assert track.display_name == "Queen - Some Title"

    def test_add_duplicate(self, sample_catalog):
        """Test adding a catalogued id fails with the existing title"""
        with pytest.raises(DuplicateTrackError) as exc_info:
            sample_catalog.add_track("track01", "20200101", "x", "y", "Other")

        assert exc_info.value.existing_id == "track01"
        assert "Still Alive" in exc_info.value.message

    def test_add_alias_id_as_track(self, sample_catalog):
        """Test an alias id cannot be added as a separate track"""
        sample_catalog.add_alias("track01", "reupload")

        with pytest.raises(DuplicateTrackError) as exc_info:
            sample_catalog.add_track("reupload", "20200101", "x", "y", "Other")

        assert exc_info.value.existing_id == "track01"

    def test_get_unknown_track(self, catalog):
        """Test unknown ids return None"""
        assert catalog.get_track("missing") is None
        assert catalog.resolve("missing") is None

    def test_get_all_track_ids(self, sample_catalog):
        """Test every canonical id is listed, aliases excluded"""
        sample_catalog.add_alias("track02", "reupload")

        assert sample_catalog.get_all_track_ids() == ["track01", "track02", "track03"]

    def test_set_title(self, sample_catalog):
        """Test renaming a track"""
        sample_catalog.set_title("track03", "  Calm Loop ")

        assert sample_catalog.get_track("track03").track_title == "Calm Loop"

    def test_set_title_rejects_blank(self, sample_catalog):
        """Test an empty title is refused"""
        with pytest.raises(ValueError):
            sample_catalog.set_title("track03", "   ")

    def test_set_artist_and_origin(self, sample_catalog):
        """Test labels are created on demand and shared"""
        sample_catalog.set_artist("track03", "GLaDOS")
        sample_catalog.set_origin("track03", "Portal 2")

        track = sample_catalog.get_track("track03")
        assert track.artist == "GLaDOS"
        assert track.origin == "Portal 2"
        assert sample_catalog.stats()["artists"] == 2
        assert sample_catalog.stats()["origins"] == 2

    def test_clear_artist_restores_sentinel(self, sample_catalog):
        """Test None or blank falls back to the default label"""
        sample_catalog.set_artist("track01", None)
        sample_catalog.set_origin("track01", " ")

        track = sample_catalog.get_track("track01")
        assert track.artist == NO_ARTIST
        assert track.origin == NO_ORIGIN

    def test_edit_unknown_track(self, catalog):
        """Test editing an unknown id raises TrackNotFoundError"""
        with pytest.raises(TrackNotFoundError):
            catalog.set_title("missing", "Title")
        with pytest.raises(TrackNotFoundError):
            catalog.set_artist("missing", "Queen")
        with pytest.raises(TrackNotFoundError):
            catalog.add_tag("missing", "rock")
        with pytest.raises(TrackNotFoundError):
            catalog.reset_tags("missing")

    def test_edit_through_alias(self, sample_catalog):
        """Test an alias can be used wherever a track id is accepted"""
        sample_catalog.add_alias("track03", "reupload")
        sample_catalog.set_title("reupload", "Renamed")
        sample_catalog.add_tag("reupload", "chill")

        track = sample_catalog.get_track("track03")
        assert track.track_title == "Renamed"
        assert track.tags == ("chill",)
        assert track.aliases == ("reupload",)

    def test_delete_track(self, sample_catalog):
        """Test deleting known and unknown ids"""
        assert sample_catalog.delete_track("track02") is True
        assert sample_catalog.delete_track("track02") is False
        assert sample_catalog.get_track("track02") is None
        # Labels survive their last track
        assert "Rick Astley" in sample_catalog.suggest("artist", "rick")


class TestTagsAndAliases:
    """Test tag and alias operations"""

    def test_add_tag_idempotent(self, sample_catalog):
        """Test tagging twice reports the second call as a no-op"""
        assert sample_catalog.add_tag("track03", "chill") is True
        assert sample_catalog.add_tag("track03", " chill ") is False
        assert sample_catalog.get_track("track03").tags == ("chill",)

    def test_add_tag_rejects_blank(self, sample_catalog):
        """Test an empty tag is refused"""
        with pytest.raises(ValueError):
            sample_catalog.add_tag("track03", "")

    def test_reset_tags(self, sample_catalog):
        """Test removing every tag from one track"""
        assert sample_catalog.reset_tags("track01") == 2
        assert sample_catalog.get_track("track01").tags == ()
        assert sample_catalog.reset_tags("track01") == 0
        assert sample_catalog.get_track("track02").tags == ("80s",)
        # The tag labels themselves are kept
        assert sample_catalog.stats()["tags"] == 3

    def test_add_alias(self, sample_catalog):
        """Test an alias resolves to its track"""
        assert sample_catalog.add_alias("track01", "reupload") is True
        assert sample_catalog.add_alias("track01", "reupload") is False
        assert sample_catalog.resolve("reupload") == "track01"
        assert sample_catalog.get_track("reupload").id == "track01"

    def test_add_alias_via_alias(self, sample_catalog):
        """Test aliases added through an alias point at the canonical id"""
        sample_catalog.add_alias("track01", "first")
        sample_catalog.add_alias("first", "second")

        assert sample_catalog.get_track("track01").aliases == ("first", "second")

    def test_alias_of_catalogued_track(self, sample_catalog):
        """Test a catalogued id cannot become an alias"""
        with pytest.raises(DuplicateTrackError):
            sample_catalog.add_alias("track01", "track02")
        with pytest.raises(DuplicateTrackError):
            sample_catalog.add_alias("track01", "track01")

    def test_alias_taken_by_other_track(self, sample_catalog):
        """Test an alias cannot point at two tracks"""
        sample_catalog.add_alias("track01", "reupload")

        with pytest.raises(DuplicateTrackError) as exc_info:
            sample_catalog.add_alias("track02", "reupload")
        assert exc_info.value.existing_id == "track01"

    def test_alias_unknown_track(self, catalog):
        """Test aliasing an unknown track fails"""
        with pytest.raises(TrackNotFoundError):
            catalog.add_alias("missing", "reupload")


class TestLookups:
    """Test autocomplete and listings"""

    def test_get_or_create_label(self, catalog):
        """Test label ids are stable"""
        first = catalog.get_or_create_label("tag", "rock")
        assert catalog.get_or_create_label("tag", " rock ") == first
        assert catalog.get_or_create_label("tag", "pop") != first

    def test_unknown_label_field(self, catalog):
        """Test only tag, artist and origin are accepted"""
        with pytest.raises(ValueError):
            catalog.suggest("genre", "")
        with pytest.raises(ValueError):
            catalog.get_or_create_label("genre", "rock")

    def test_suggest_prefix_first(self, catalog):
        """Test prefix matches come before substring matches"""
        for tag in ("Rock", "Hard Rock", "Pop Rock", "Electro", "Jazz"):
            catalog.get_or_create_label("tag", tag)

        assert catalog.suggest("tag", "ro") == ["Rock", "Electro", "Hard Rock", "Pop Rock"]
        assert catalog.suggest("tag", "RO", limit=2) == ["Rock", "Electro"]

    def test_suggest_empty_lists_all(self, catalog):
        """Test an empty partial returns everything alphabetically"""
        for tag in ("b", "A", "c"):
            catalog.get_or_create_label("tag", tag)

        assert catalog.suggest("tag", "") == ["A", "b", "c"]

    def test_suggest_escapes_wildcards(self, catalog):
        """Test % and _ are matched literally"""
        for tag in ("a_b", "axb", "100%", "1000"):
            catalog.get_or_create_label("tag", tag)

        assert catalog.suggest("tag", "a_") == ["a_b"]
        assert catalog.suggest("tag", "0%") == ["100%"]

    def test_search_tracks(self, sample_catalog):
        """Test matching title, artist, origin or tag"""
        assert sample_catalog.search_tracks("portal") == [
            ("Still Alive | GLaDOS | Portal | credits, games", "track01"),
        ]
        assert sample_catalog.search_tracks("80S") == [
            ("Never Gonna Give You Up | Rick Astley | No origin provided | 80s", "track02"),
        ]
        assert sample_catalog.search_tracks("loop") == [
            ("Ambient Loop | No artist provided | No origin provided | No tags", "track03"),
        ]

    def test_search_tracks_width(self, sample_catalog):
        """Test displays are fitted to the requested width"""
        results = sample_catalog.search_tracks("", width=60)

        assert [track_id for _, track_id in results] == ["track03", "track02", "track01"]
        assert all(len(display) <= 60 for display, _ in results)
        assert results[1][0].startswith("Never Gonna Give Y… | Rick Astley")
        assert results[2][0] == "Still Alive | GLaDOS | Portal | credits, games"

    def test_list_tracks_by_title(self, sample_catalog):
        """Test default listing order"""
        rows = sample_catalog.list_tracks()

        assert [row.track_id for row in rows] == ["track03", "track02", "track01"]
        assert rows[2].tags == ("credits", "games")
        assert rows[0].tags == ()

    def test_list_tracks_by_artist(self, sample_catalog):
        """Test listing by artist"""
        rows = sample_catalog.list_tracks(sort="artist")

        assert [row.artist for row in rows] == ["GLaDOS", NO_ARTIST, "Rick Astley"]

    def test_list_tracks_by_tags(self, sample_catalog):
        """Test untagged tracks are listed last"""
        rows = sample_catalog.list_tracks(sort="tags")

        assert [row.track_id for row in rows] == ["track02", "track01", "track03"]

    def test_list_tracks_unknown_sort(self, catalog):
        """Test invalid sort keys are rejected"""
        with pytest.raises(ValueError):
            catalog.list_tracks(sort="duration")

    def test_stats(self, sample_catalog):
        """Test counts exclude the sentinel labels"""
        sample_catalog.add_alias("track01", "reupload")

        assert sample_catalog.stats() == {
            "tracks": 3,
            "artists": 2,
            "origins": 1,
            "tags": 3,
            "aliases": 1,
        }


class TestImportRecord:
    """Test applying batch-import records"""

    def test_insert_new(self, catalog, sample_record_data):
        """Test a new record is inserted with its labels"""
        record = TrackRecord.from_dict(sample_record_data)

        assert catalog.import_record(record) is True

        track = catalog.get_track("dQw4w9WgXcQ")
        assert track.track_title == "Never Gonna Give You Up"
        assert track.artist == "Rick Astley"
        assert track.origin == NO_ORIGIN
        assert track.yt_channel == "Rick Astley"
        assert track.tags == ("80s", "meme")

    def test_existing_keeps_metadata_merges_tags(self, catalog, sample_record_data):
        """Test a known id only gains tags"""
        catalog.import_record(TrackRecord.from_dict(sample_record_data))
        catalog.set_title("dQw4w9WgXcQ", "Rickroll")

        updated = dict(sample_record_data, track_title="Other", tags=["meme", "classic"])
        assert catalog.import_record(TrackRecord.from_dict(updated)) is False

        track = catalog.get_track("dQw4w9WgXcQ")
        assert track.track_title == "Rickroll"
        assert track.tags == ("80s", "classic", "meme")

    def test_record_for_alias(self, sample_catalog, sample_record_data):
        """Test a record whose id is an alias merges into the canonical track"""
        sample_catalog.add_alias("track02", "dQw4w9WgXcQ")

        assert sample_catalog.import_record(TrackRecord.from_dict(sample_record_data)) is False
        assert sample_catalog.get_track("track02").tags == ("80s", "meme")
        assert sample_catalog.stats()["tracks"] == 3
