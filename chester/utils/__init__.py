"""
Utility functions for chester.

This module provides common helpers used across the application:
    - YouTube link parsing
    - Fixed-width display trimming for library listings and autocomplete
    - Path helpers

Usage:
    from chester.utils import extract_video_id, truncate_display

    video_id = extract_video_id("https://youtu.be/dQw4w9WgXcQ")
"""

from pathlib import Path
from urllib.parse import parse_qs, urlparse


ELLIPSIS = "…"

DISPLAY_SEPARATOR = " | "

_YOUTUBE_HOSTS = ("www.youtube.com", "youtube.com", "m.youtube.com")


def extract_video_id(link: str) -> str | None:
    """
    Extract the video id from a YouTube link.

    Supported forms:
        https://youtu.be/<id>
        https://www.youtube.com/watch?v=<id>   (also youtube.com, m.youtube.com)
        https://www.youtube.com/embed/<id>

    Returns:
        The video id, or None if the link is not a recognised YouTube URL.

    Examples:
        extract_video_id("https://youtu.be/dQw4w9WgXcQ?t=42")  # "dQw4w9WgXcQ"
        extract_video_id("https://example.com/watch?v=x")      # None
    """
    parsed = urlparse(link.strip())
    if parsed.scheme not in ("http", "https"):
        return None

    host = (parsed.hostname or "").lower()
    segments = [segment for segment in parsed.path.split("/") if segment]

    if host == "youtu.be":
        return segments[0] if segments else None

    if host in _YOUTUBE_HOSTS:
        ids = parse_qs(parsed.query).get("v")
        if ids and ids[0]:
            return ids[0]
        if "embed" in segments:
            index = segments.index("embed")
            if index + 1 < len(segments):
                return segments[index + 1]

    return None


def truncate_display(text: str, width: int) -> str:
    """
    Shorten text to at most `width` characters, ending with an ellipsis
    when something was cut.

    Examples:
        truncate_display("Bohemian Rhapsody", 10)  # "Bohemian …"
        truncate_display("Queen", 10)              # "Queen"
    """
    if width <= len(ELLIPSIS):
        return ELLIPSIS
    if len(text) <= width:
        return text
    return text[:width - len(ELLIPSIS)] + ELLIPSIS


def join_display(fields: list[str], width: int) -> str:
    """
    Join fields with DISPLAY_SEPARATOR so the result fits in `width`.

    The longest field is trimmed first, repeatedly, until everything fits.

    Example:
        join_display(["Never Gonna Give You Up", "Rick Astley", "80s"], 30)
        # "Never Gon… | Rick Astley | 80s"
    """
    fields = list(fields)
    budget = width - len(DISPLAY_SEPARATOR) * (len(fields) - 1)

    while sum(len(field) for field in fields) > budget:
        longest = max(range(len(fields)), key=lambda i: len(fields[i]))
        excess = sum(len(field) for field in fields) - budget
        target = max(len(fields[longest]) - excess, len(ELLIPSIS))
        if target >= len(fields[longest]):
            break
        fields[longest] = truncate_display(fields[longest], target)

    return DISPLAY_SEPARATOR.join(fields)


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it and its parents if necessary.

    Returns:
        The same path (for chaining).

    Raises:
        OSError: If the directory cannot be created.
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
