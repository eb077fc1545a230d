"""
Data models for catalog entities.

These immutable dataclasses are what the catalog hands back to callers;
they are independent of the table layout underneath.

Usage:
    from chester.catalog.models import Track, TrackRecord

    track = catalog.get_track("dQw4w9WgXcQ")
    print(track.display_name)
"""

from dataclasses import dataclass, field
from typing import Any

from chester.core.exceptions import ImportRecordError


NO_ARTIST = "No artist provided"
NO_ORIGIN = "No origin provided"

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def watch_url(video_id: str) -> str:
    """Return the canonical YouTube watch URL for a video id."""
    return YOUTUBE_WATCH_URL.format(video_id=video_id)


@dataclass(frozen=True)
class Track:
    """
    Immutable representation of a catalogued track.

    Attributes:
        id: YouTube video id, the track's stable key.
            Example: "dQw4w9WgXcQ"

        upload_date: Upload date as reported by YouTube (YYYYMMDD).
                     Example: "20091025"

        yt_title: Video title on YouTube.

        yt_channel: Uploading channel name. Empty when unknown.

        track_title: User-assigned title, shown in the library.

        artist: User-assigned artist, or NO_ARTIST.

        origin: Where the track comes from (game, film, ...), or NO_ORIGIN.

        tags: Sorted tuple of tag labels.

        aliases: Sorted tuple of alternate video ids mapped to this track.
    """
    id: str
    upload_date: str
    yt_title: str
    yt_channel: str
    track_title: str
    artist: str = NO_ARTIST
    origin: str = NO_ORIGIN
    tags: tuple[str, ...] = field(default_factory=tuple)
    aliases: tuple[str, ...] = field(default_factory=tuple)

    @property
    def url(self) -> str:
        return watch_url(self.id)

    @property
    def display_name(self) -> str:
        """'Artist - Title', or just the title when no artist is known."""
        if self.artist == NO_ARTIST:
            return self.track_title
        return f"{self.artist} - {self.track_title}"


@dataclass(frozen=True)
class LibraryRow:
    """One row of a library listing."""
    track_id: str
    title: str
    artist: str
    origin: str
    tags: tuple[str, ...]


@dataclass(frozen=True)
class TrackRecord:
    """
    A track as it appears in a batch import file.

    Example JSON:
        {
            "id": "dQw4w9WgXcQ",
            "upload_date": "20091025",
            "yt_title": "Rick Astley - Never Gonna Give You Up",
            "yt_channel": "Rick Astley",
            "track_title": "Never Gonna Give You Up",
            "track_artist": "Rick Astley",
            "track_origin": null,
            "tags": ["80s", "meme"]
        }
    """
    id: str
    upload_date: str
    yt_title: str
    track_title: str
    yt_channel: str = ""
    artist: str = NO_ARTIST
    origin: str = NO_ORIGIN
    tags: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackRecord":
        """
        Build a record from a parsed JSON object.

        Missing or null artist/origin fall back to the sentinel labels, and
        a missing track_title falls back to yt_title.

        Raises:
            ImportRecordError: If the object lacks id, upload_date or yt_title,
                               or tags is not a list of strings.
        """
        if not isinstance(data, dict):
            raise ImportRecordError("Track record must be a JSON object")

        missing = [
            key for key in ("id", "upload_date", "yt_title")
            if not isinstance(data.get(key), str) or not data[key].strip()
        ]
        if missing:
            raise ImportRecordError(
                f"Track record is missing required fields: {', '.join(missing)}",
                details={"missing": missing, "id": data.get("id")}
            )

        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise ImportRecordError(
                "Track record 'tags' must be a list of strings",
                details={"id": data["id"]}
            )

        yt_title = data["yt_title"].strip()
        return cls(
            id=data["id"].strip(),
            upload_date=data["upload_date"].strip(),
            yt_title=yt_title,
            track_title=_text_or(data.get("track_title"), yt_title),
            yt_channel=_text_or(data.get("yt_channel"), ""),
            artist=_text_or(data.get("track_artist"), NO_ARTIST),
            origin=_text_or(data.get("track_origin"), NO_ORIGIN),
            tags=tuple(dict.fromkeys(tag.strip() for tag in tags if tag.strip())),
        )


def _text_or(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default
