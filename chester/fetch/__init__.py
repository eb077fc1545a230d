"""
Audio fetching for chester.

    - downloader: yt-dlp wrapper, the batch fetch driver and add-from-link
"""

from chester.fetch.downloader import (
    Downloader,
    FetchStats,
    add_from_link,
    fetch_missing_audio,
)

__all__ = [
    "Downloader",
    "FetchStats",
    "add_from_link",
    "fetch_missing_audio",
]
