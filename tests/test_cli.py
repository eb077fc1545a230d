# tests/test_cli.py
"""Test the command-line interface"""

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from chester import __version__
from chester.catalog import open_catalog
from chester.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(runner, temp_dir):
    """Run each command in an empty working directory"""
    with runner.isolated_filesystem(temp_dir=temp_dir) as path:
        yield Path(path)


@pytest.fixture
def seeded(workdir):
    """Catalog at the default location with two tracks"""
    with open_catalog(workdir / "database" / "metadata.sqlite3") as catalog:
        catalog.add_track("track01", "20071010", "Portal - Still Alive", "Valve",
                          "Still Alive", artist="GLaDOS", origin="Portal")
        catalog.add_track("track02", "20091025", "Never Gonna", "Rick",
                          "Never Gonna", artist="Rick")
    return workdir


def open_default_catalog(workdir):
    return open_catalog(workdir / "database" / "metadata.sqlite3")


class TestGeneral:
    """Test top-level options"""

    def test_version(self, runner, workdir):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert f"chester {__version__}" in result.output

    def test_no_command_shows_help(self, runner, workdir):
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        assert "fetch" in result.output

    def test_missing_config_file(self, runner, workdir):
        """Test an explicit --config that does not exist exits 1"""
        result = runner.invoke(cli, ["--config", "missing.yaml", "stats"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_config_file_used(self, runner, workdir):
        """Test --config relocates the catalog"""
        (workdir / "custom.yaml").write_text(
            "database:\n  path: data/catalog.db\n", encoding="utf-8"
        )

        result = runner.invoke(cli, ["--config", "custom.yaml", "migrate"])

        assert result.exit_code == 0
        assert (workdir / "data" / "catalog.db").exists()


class TestFetchUsage:
    """Test fetch mode validation"""

    def test_fetch_without_catalog(self, runner, workdir, fake_youtube):
        """Test fetch refuses a missing catalog instead of creating one"""
        result = runner.invoke(cli, ["fetch", "--sequential"])

        assert result.exit_code == 2
        assert "Catalog not found" in result.output
        assert not (workdir / "database").exists()
        assert fake_youtube.calls == []

    @pytest.mark.parametrize("args", [
        ["fetch"],
        ["fetch", "--parallel", "--sequential"],
        ["fetch", "--sequential", "--jobs", "2"],
        ["fetch", "--parallel", "--jobs", "0"],
        ["fetch", "--fast"],
    ])
    def test_usage_errors(self, runner, workdir, args):
        """Test invalid invocations exit 2 without touching disk"""
        result = runner.invoke(cli, args)

        assert result.exit_code == 2
        assert os.listdir(workdir) == []

    @pytest.mark.parametrize("mode", [["--sequential"], ["--parallel", "--jobs", "2"]])
    def test_fetch_with_failures_succeeds(self, runner, seeded, fake_youtube, mode):
        """Test a batch with a failed track still exits 0 and reports it"""
        fake_youtube.failing.add("track02")

        result = runner.invoke(cli, ["fetch", *mode])

        assert result.exit_code == 0
        assert (seeded / "audio" / "track01.mp3").exists()
        assert not (seeded / "audio" / "track02.mp3").exists()

        reports = list((seeded / "audio" / "logs").glob("download_failures_*.log"))
        assert len(reports) == 1
        assert reports[0].read_text(encoding="utf-8") == (
            "track02\nhttps://www.youtube.com/watch?v=track02\n\n"
        )


class TestCatalogCommands:
    """Test catalog maintenance commands"""

    def test_migrate(self, runner, workdir):
        result = runner.invoke(cli, ["migrate"])

        assert result.exit_code == 0
        assert "Applied migration(s): 1, 2, 3, 4" in result.output
        assert "Catalog schema version: 4" in result.output

        result = runner.invoke(cli, ["migrate"])
        assert "Applied migration" not in result.output

    def test_add(self, runner, workdir, fake_youtube):
        result = runner.invoke(cli, [
            "add", "https://youtu.be/newvid", "--title", "Radio Ga Ga", "--artist", "Queen",
        ])

        assert result.exit_code == 0
        assert "Added `newvid` as Queen - Radio Ga Ga" in result.output
        assert (workdir / "audio" / "newvid.mp3").exists()

    def test_add_invalid_link(self, runner, workdir, fake_youtube):
        """Test a non-YouTube link exits 4"""
        result = runner.invoke(cli, ["add", "https://example.com/video"])

        assert result.exit_code == 4
        assert "Not a YouTube video link" in result.output

    def test_add_duplicate(self, runner, seeded, fake_youtube):
        """Test an existing track exits 2 without downloading"""
        result = runner.invoke(cli, ["add", "https://youtu.be/track01"])

        assert result.exit_code == 2
        assert "exists in the database already as `Still Alive`" in result.output
        assert fake_youtube.calls == []

    def test_set_fields(self, runner, seeded):
        assert runner.invoke(cli, ["set", "title", "track02", "Never Gonna Give You Up"]).exit_code == 0
        assert runner.invoke(cli, ["set", "artist", "track02", "Rick Astley"]).exit_code == 0
        assert runner.invoke(cli, ["set", "origin", "track02", "Memes"]).exit_code == 0

        with open_default_catalog(seeded) as catalog:
            track = catalog.get_track("track02")
        assert track.track_title == "Never Gonna Give You Up"
        assert track.artist == "Rick Astley"
        assert track.origin == "Memes"

    def test_set_blank_value(self, runner, seeded):
        """Test a blank value is a usage error"""
        assert runner.invoke(cli, ["set", "title", "track02", " "]).exit_code == 2

    def test_tags(self, runner, seeded):
        result = runner.invoke(cli, ["tag", "add", "track01", "games"])
        assert result.exit_code == 0
        assert "Tagged `track01` with games" in result.output

        result = runner.invoke(cli, ["tag", "add", "track01", "games"])
        assert "already tagged" in result.output

        result = runner.invoke(cli, ["tag", "reset", "track01"])
        assert result.exit_code == 0
        assert "Removed 1 tag(s) from `track01`" in result.output

    def test_tag_unknown_track(self, runner, seeded):
        """Test an unknown track exits 2"""
        result = runner.invoke(cli, ["tag", "add", "missing", "games"])

        assert result.exit_code == 2
        assert "could not be found" in result.output

    def test_alias(self, runner, seeded):
        result = runner.invoke(cli, ["alias", "track01", "reupload"])

        assert result.exit_code == 0
        assert "`reupload` now resolves to `track01`" in result.output

    def test_remove(self, runner, seeded):
        assert runner.invoke(cli, ["remove", "track01"]).exit_code == 0

        result = runner.invoke(cli, ["remove", "track01"])
        assert result.exit_code == 2
        assert "could not be found" in result.output

    def test_import(self, runner, workdir, sample_record_data):
        records = workdir / "json"
        records.mkdir()
        (records / "rick.json").write_text(json.dumps(sample_record_data), encoding="utf-8")
        (records / "broken.json").write_text("{", encoding="utf-8")

        result = runner.invoke(cli, ["import", "json"])

        assert result.exit_code == 0
        assert "1 imported, 0 already present, 1 failed" in result.output


class TestListings:
    """Test read-only commands"""

    def test_library(self, runner, seeded):
        result = runner.invoke(cli, ["library", "--sort", "artist"])

        assert result.exit_code == 0
        assert "track01" in result.output
        assert result.output.index("track01") < result.output.index("track02")
        assert not (seeded / "audio").exists()

    def test_library_bad_sort(self, runner, seeded):
        assert runner.invoke(cli, ["library", "--sort", "length"]).exit_code == 2

    def test_search(self, runner, seeded):
        result = runner.invoke(cli, ["search", "portal"])

        assert result.exit_code == 0
        assert "track01  Still Alive | GLaDOS | Portal | No tags" in result.output
        assert "track02" not in result.output

    def test_suggest(self, runner, seeded):
        result = runner.invoke(cli, ["suggest", "artist", "gl"])

        assert result.exit_code == 0
        assert result.output.strip() == "GLaDOS"

    @pytest.mark.parametrize("args", [
        ["stats"],
        ["library"],
        ["search", "portal"],
        ["suggest", "artist", "gl"],
    ])
    def test_listing_without_catalog(self, runner, workdir, args):
        """Test listing commands exit 2 and leave no catalog behind"""
        result = runner.invoke(cli, args)

        assert result.exit_code == 2
        assert os.listdir(workdir) == []

    def test_listings_leave_catalog_unchanged(self, runner, seeded, fake_youtube):
        """Test read-only commands and fetch never write to the catalog file"""
        db_file = seeded / "database" / "metadata.sqlite3"
        before = db_file.read_bytes()

        for args in (["stats"], ["library"], ["search", "still"],
                     ["suggest", "tag", ""], ["fetch", "--sequential"]):
            assert runner.invoke(cli, args).exit_code == 0, args

        assert db_file.read_bytes() == before

    def test_stats(self, runner, seeded):
        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert "Tracks:          2" in result.output
        assert "Artists:         2" in result.output
