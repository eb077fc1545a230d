"""
Audio fetcher for chester.

This module materialises the audio for every catalogued track as a local
file `<audio_directory>/<track_id>.<ext>`, downloaded from YouTube with
yt-dlp and converted by FFmpeg (via yt-dlp's FFmpegExtractAudio
postprocessor). The extension is the one FFmpeg writes for the codec:
"vorbis" becomes `.ogg`, "aac" and "alac" become `.m4a`.

Fetch Workflow:
    1. Read every track id from the catalog (once, before any download)
    2. Skip ids whose target file already exists (no freshness check)
    3. Download the rest, sequentially or with a bounded thread pool
    4. Log each failure (console, log files, download_failures report)
       and carry on with the next id; nothing is retried
    5. Return FetchStats

Worker threads never touch the catalog: each one drives a single yt-dlp
invocation writing its own id-named file, and only the coordinating thread
updates the statistics and the progress bar.

Dependencies:
    - yt-dlp: YouTube download and extraction
    - FFmpeg: Audio conversion (must be installed)

Usage:
    from chester.fetch.downloader import Downloader, fetch_missing_audio

    downloader = Downloader.from_config(config)
    with open_catalog(config.database.path) as catalog:
        stats = fetch_missing_audio(catalog, downloader, parallel=True, jobs=8)
    print(f"Downloaded: {stats.downloaded}/{stats.total}")
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from yt_dlp import YoutubeDL
from yt_dlp.postprocessor.ffmpeg import ACODECS
from yt_dlp.utils import DownloadCancelled

from chester.catalog.database import Catalog
from chester.catalog.models import Track, watch_url
from chester.core.config import DEFAULT_CODEC, DEFAULT_QUALITY, Config
from chester.core.exceptions import DownloadError, DuplicateTrackError
from chester.core.logger import format_fetch_summary, get_logger, log_download_failure
from chester.core.progress import FetchProgressBar
from chester.utils import ensure_directory, extract_video_id

logger = get_logger(__name__)


class YtDlpSilentLogger:
    """
    Logger handed to yt-dlp so it never prints to the terminal.

    yt-dlp ignores quiet=True for certain errors and prints directly to
    stderr. Everything is routed to our DEBUG log instead, and the last
    error is kept so it can be attached to the DownloadError.
    """

    def __init__(self) -> None:
        self.last_error: str | None = None

    def debug(self, msg: str) -> None:
        pass

    def info(self, msg: str) -> None:
        pass

    def warning(self, msg: str) -> None:
        logger.debug(f"yt-dlp: {msg}")

    def error(self, msg: str) -> None:
        self.last_error = msg
        logger.debug(f"yt-dlp: {msg}")


@dataclass
class FetchStats:
    """
    Statistics from a fetch batch.

    Attributes:
        total: Number of catalogued track ids considered.
        downloaded: Files written by this run.
        skipped: Files that already existed.
        failed: Ids whose download failed.
    """

    total: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def missing(self) -> int:
        """Ids that needed a download (downloaded + failed)."""
        return self.total - self.skipped


def slim_info(info: dict[str, Any]) -> dict[str, str]:
    """
    Keep only the yt-dlp metadata the catalog stores.

    Returns:
        {"id", "upload_date", "title", "channel"}; missing values become "".
    """
    return {
        "id": info.get("id") or "",
        "upload_date": info.get("upload_date") or "",
        "title": info.get("title") or "",
        "channel": info.get("channel") or info.get("uploader") or "",
    }


class Downloader:
    """
    Downloads audio for track ids with yt-dlp.

    Attributes:
        audio_dir: Directory holding `<track_id>.<extension>` files.
        codec: Target audio codec ("mp3" by default).
        extension: File extension FFmpeg writes for `codec`.
        quality: FFmpeg quality setting passed to the postprocessor.
        cookie_file: Optional cookies.txt for restricted videos.

    Thread Safety:
        download() and download_track() are thread-safe: every call builds
        its own YoutubeDL instance and writes a distinct file.
    """

    def __init__(
        self,
        audio_dir: Path,
        codec: str = DEFAULT_CODEC,
        quality: str = DEFAULT_QUALITY,
        cookie_file: Path | None = None
    ) -> None:
        self.audio_dir = audio_dir
        self.codec = codec
        self.quality = quality
        self.cookie_file = cookie_file
        self.extension = ACODECS[codec][0]
        self._cancel = threading.Event()

    @classmethod
    def from_config(cls, config: Config) -> "Downloader":
        return cls(
            audio_dir=config.output.audio_directory,
            codec=config.download.codec,
            quality=config.download.quality,
            cookie_file=config.download.cookie_file,
        )

    def audio_path(self, track_id: str) -> Path:
        """Target file for a track id."""
        return self.audio_dir / f"{track_id}.{self.extension}"

    def has_audio(self, track_id: str) -> bool:
        return self.audio_path(track_id).exists()

    def _get_yt_dlp_options(self, yt_logger: YtDlpSilentLogger) -> dict[str, Any]:
        """
        Build yt-dlp options dictionary.

        Equivalent to `yt-dlp -t <codec> -o <audio_dir>/%(id)s.%(ext)s
        --no-playlist --no-progress`: best audio stream (preferring one
        already in the target codec), extracted and converted by FFmpeg.
        """
        options: dict[str, Any] = {
            "format": f"ba[acodec^={self.codec}]/ba/b",
            "outtmpl": str(self.audio_dir / "%(id)s.%(ext)s"),
            "noplaylist": True,

            # Quiet mode (we handle our own logging)
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "logger": yt_logger,

            "encoding": "UTF-8",

            "postprocessors": [
                {
                    "key": "FFmpegExtractAudio",
                    "preferredcodec": self.codec,
                    "preferredquality": self.quality,
                }
            ],
            "keepvideo": False,
            "progress_hooks": [self._check_cancelled],
        }

        if self.cookie_file is not None:
            options["cookiefile"] = str(self.cookie_file)

        return options

    def _check_cancelled(self, progress: dict[str, Any]) -> None:
        """Abort an in-flight download once the batch is interrupted."""
        if self._cancel.is_set():
            raise DownloadCancelled("Fetch interrupted")

    def download(self, track_id: str) -> dict[str, str]:
        """
        Download the audio for one track id.

        When the target file already exists only the metadata is extracted.

        Returns:
            Slim metadata (see slim_info).

        Raises:
            DownloadError: If yt-dlp fails or the target file is not written.
        """
        url = watch_url(track_id)
        target = self.audio_path(track_id)
        fetch_audio = not target.exists()
        yt_logger = YtDlpSilentLogger()

        ensure_directory(self.audio_dir)

        try:
            with YoutubeDL(self._get_yt_dlp_options(yt_logger)) as ydl:
                info = ydl.extract_info(url, download=fetch_audio)
        except Exception as e:
            error_msg = str(e)
            if yt_logger.last_error and yt_logger.last_error not in error_msg:
                error_msg = f"{error_msg} | {yt_logger.last_error}"
            raise DownloadError(
                f"yt-dlp error: {error_msg}",
                details={"track_id": track_id, "url": url}
            ) from e

        if info is None:
            raise DownloadError(
                "yt-dlp returned no info",
                details={"track_id": track_id, "url": url}
            )

        if not target.exists():
            raise DownloadError(
                f"yt-dlp finished but {target.name} was not written",
                details={"track_id": track_id, "path": str(target)}
            )

        return slim_info(info)

    def download_track(self, track_id: str) -> bool:
        """
        Download one track, logging instead of raising on failure.

        Returns:
            True if the file was written, False otherwise.
        """
        logger.debug(f"Downloading {track_id}")
        try:
            self.download(track_id)
        except DownloadError as e:
            if isinstance(e.__cause__, DownloadCancelled):
                logger.debug(f"Cancelled {track_id}")
                return False
            log_download_failure(logger, track_id, watch_url(track_id), e.message)
            return False
        except Exception as e:
            log_download_failure(
                logger, track_id, watch_url(track_id), f"Unexpected error: {e}"
            )
            return False

        logger.debug(f"Downloaded {track_id} -> {self.audio_path(track_id).name}")
        return True

    def fetch_all(
        self,
        track_ids: Sequence[str],
        parallel: bool,
        jobs: int = 8,
        show_progress: bool = True
    ) -> FetchStats:
        """
        Ensure a local file exists for every id in `track_ids`.

        Args:
            track_ids: Ids to materialise (order irrelevant).
            parallel: Use a thread pool of `jobs` workers instead of
                      downloading one id at a time.
            jobs: Maximum concurrent downloads in parallel mode.
            show_progress: Display a Rich progress bar.

        Returns:
            FetchStats with per-outcome counts.

        Raises:
            KeyboardInterrupt: Re-raised after queued downloads are cancelled
                and running ones are told to stop. A running FFmpeg
                conversion still completes before its worker exits.
        """
        stats = FetchStats(total=len(track_ids))

        if not track_ids:
            logger.info("No tracks in the catalog")
            return stats

        ensure_directory(self.audio_dir)

        with FetchProgressBar(total=len(track_ids), disable=not show_progress) as progress:
            missing = []
            for track_id in track_ids:
                if self.has_audio(track_id):
                    stats.skipped += 1
                    progress.update(success=True, skipped=True)
                else:
                    missing.append(track_id)

            if not missing:
                logger.info(f"All {stats.total} tracks already have audio")
                return stats

            mode = f"{jobs} workers" if parallel else "sequentially"
            logger.info(
                f"Fetching {len(missing)} missing track(s) {mode} "
                f"({stats.skipped} already present)"
            )

            def record(success: bool) -> None:
                if success:
                    stats.downloaded += 1
                else:
                    stats.failed += 1
                progress.update(success=success)

            self._cancel.clear()
            if parallel:
                self._fetch_parallel(missing, jobs, record)
            else:
                for track_id in missing:
                    record(self.download_track(track_id))

        return stats

    def _fetch_parallel(
        self,
        track_ids: list[str],
        jobs: int,
        record: Callable[[bool], None]
    ) -> None:
        executor = ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="fetch")
        try:
            future_to_id = {
                executor.submit(self.download_track, track_id): track_id
                for track_id in track_ids
            }
            for future in as_completed(future_to_id):
                record(future.result())
        except KeyboardInterrupt:
            logger.warning("Interrupted, cancelling queued downloads")
            self._cancel.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)


def fetch_missing_audio(
    catalog: Catalog,
    downloader: Downloader,
    parallel: bool,
    jobs: int = 8,
    show_progress: bool = True
) -> FetchStats:
    """
    Fetch audio for every catalogued track that has no local file.

    This is the main entry point called by the CLI for `chester fetch`.
    The catalog is read once; per-track failures never raise.
    """
    track_ids = catalog.get_all_track_ids()
    logger.info(f"Found {len(track_ids)} catalogued track(s)")

    stats = downloader.fetch_all(
        track_ids, parallel=parallel, jobs=jobs, show_progress=show_progress
    )

    logger.info(format_fetch_summary(stats.downloaded, stats.skipped, stats.failed))
    return stats


def add_from_link(
    catalog: Catalog,
    downloader: Downloader,
    link: str,
    title: str | None = None,
    artist: str | None = None,
    origin: str | None = None
) -> Track:
    """
    Download a YouTube link and catalog it as a new track.

    The catalog is checked before anything is downloaded. The stored
    upload date, source title and channel come from yt-dlp; the track
    title falls back to the source title.

    Raises:
        DownloadError: If the link is not a YouTube video link, or the
                       download fails.
        DuplicateTrackError: If the video (or an alias of it) is catalogued.
    """
    video_id = extract_video_id(link)
    if video_id is None:
        raise DownloadError(
            f"Not a YouTube video link: {link}",
            details={"url": link}
        )

    existing = catalog.get_track(video_id)
    if existing is not None:
        raise DuplicateTrackError(video_id, existing.id, title=existing.track_title)

    logger.info(f"Downloading {video_id}")
    info = downloader.download(video_id)

    track = catalog.add_track(
        video_id=video_id,
        upload_date=info["upload_date"],
        yt_title=info["title"],
        yt_channel=info["channel"],
        track_title=(title or "").strip() or info["title"],
        artist=artist,
        origin=origin,
    )
    logger.info(f"Added {track.id} as '{track.display_name}'")
    return track
