"""Test configuration and fixtures"""

import json
import tempfile
import threading
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from yt_dlp.postprocessor.ffmpeg import ACODECS

from chester.catalog import open_catalog


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def db_path(temp_dir):
    """Catalog location inside the temporary directory"""
    return temp_dir / "database" / "metadata.sqlite3"


@pytest.fixture
def catalog(db_path):
    """Fresh, fully migrated catalog"""
    with open_catalog(db_path) as catalog:
        yield catalog


@pytest.fixture
def sample_record_data():
    """One batch-import record as it appears on disk"""
    return {
        "id": "dQw4w9WgXcQ",
        "upload_date": "20091025",
        "yt_title": "Rick Astley - Never Gonna Give You Up (Official Music Video)",
        "yt_channel": "Rick Astley",
        "track_title": "Never Gonna Give You Up",
        "track_artist": "Rick Astley",
        "track_origin": None,
        "tags": ["80s", "meme"],
    }


@pytest.fixture
def write_json(temp_dir):
    """Write a JSON document into temp_dir/json and return its path"""
    json_dir = temp_dir / "json"
    json_dir.mkdir(exist_ok=True)

    def write(name, data):
        path = json_dir / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return write


@pytest.fixture
def sample_catalog(catalog):
    """Catalog holding three tracks: tagged, tagged, and sentinel-only"""
    catalog.add_track(
        "track01", "20071010", "Portal - Still Alive", "Valve",
        "Still Alive", artist="GLaDOS", origin="Portal", tags=["games", "credits"]
    )
    catalog.add_track(
        "track02", "20091025", "Rick Astley - Never Gonna Give You Up", "Rick Astley",
        "Never Gonna Give You Up", artist="Rick Astley", tags=["80s"]
    )
    catalog.add_track(
        "track03", "20150101", "ambient loop", "someone",
        "Ambient Loop"
    )
    return catalog


@pytest.fixture
def fake_youtube():
    """
    Replace yt-dlp's YoutubeDL with a fake that writes <id>.<ext>, the
    extension FFmpeg would give the requested codec.

    Ids in `failing` raise like an unavailable video, ids in `unwritten`
    report success without producing a file.
    """
    state = SimpleNamespace(calls=[], failing=set(), unwritten=set(), options=[])
    lock = threading.Lock()

    class FakeYoutubeDL:
        def __init__(self, options):
            self.options = options
            with lock:
                state.options.append(options)

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            return False

        def extract_info(self, url, download=True):
            video_id = url.rsplit("=", 1)[1]
            with lock:
                state.calls.append((video_id, download))

            if video_id in state.failing:
                raise RuntimeError("ERROR: Video unavailable")

            if download:
                for hook in self.options.get("progress_hooks", []):
                    hook({"status": "downloading", "info_dict": {"id": video_id}})

            if download and video_id not in state.unwritten:
                codec = self.options["postprocessors"][0]["preferredcodec"]
                target = (
                    self.options["outtmpl"]
                    .replace("%(id)s", video_id)
                    .replace("%(ext)s", ACODECS[codec][0])
                )
                Path(target).write_bytes(b"fake audio")

            return {
                "id": video_id,
                "upload_date": "20200101",
                "title": f"Video {video_id}",
                "uploader": "Some Uploader",
            }

    with patch("chester.fetch.downloader.YoutubeDL", FakeYoutubeDL):
        yield state
