"""
Command-line interface for chester.

This module implements the CLI using Click, providing every command needed
to maintain the bot's catalog and its audio directory.
rich-click is used for the output colors.

Commands:
    chester fetch --parallel [--jobs N]         Download all missing audio files
    chester fetch --sequential                  Same, one track at a time
    chester migrate                             Bring the catalog schema up to date
    chester import FILES...                     Import per-track JSON records
    chester add LINK [--title --artist --origin]  Download and catalog a video
    chester set {title,artist,origin} TRACK VALUE
    chester tag add TRACK TAG                   Tag a track
    chester tag reset TRACK                     Remove all tags from a track
    chester alias TRACK ALIAS                   Map a re-upload onto a track
    chester remove TRACK                        Delete a track (audio file is kept)
    chester library [--sort KEY]                List the catalog
    chester search QUERY                        Track autocomplete
    chester suggest {tag,artist,origin} [PARTIAL]  Label autocomplete
    chester stats                               Catalog counts

Options:
    --config <path>                             Config file (default ./config.yaml)
    --version                                   Show version and exit

Exit Codes:
    0   Success (a fetch with per-track failures still exits 0)
    1   Configuration error or unexpected error
    2   Usage error, or database error
    4   Other chester error (e.g., invalid link, failed download)
    130 Interrupted by user

Configuration:
    config.yaml is optional; see chester.core.config for the format.
"""

import sys
from pathlib import Path
from typing import Callable, Optional

import rich_click as click
from rich.console import Console
from rich.table import Table

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "chester fetch": [
        {
            "name": "Mode (exactly one)",
            "options": ["--parallel", "--sequential"],
        },
        {
            "name": "Parallel Options",
            "options": ["--jobs"],
        },
    ],
}

from chester import __version__
from chester.catalog import Catalog, open_catalog
from chester.catalog.database import LABEL_TABLES, LIBRARY_SORT_KEYS
from chester.catalog.importer import import_files
from chester.core import (
    ChesterError,
    Config,
    ConfigError,
    DatabaseError,
    TrackNotFoundError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from chester.fetch import Downloader, add_from_link, fetch_missing_audio
from chester.utils import truncate_display

logger = get_logger(__name__)

# Column widths for `chester library`
LIBRARY_TITLE_WIDTH = 40
LIBRARY_LABEL_WIDTH = 24


def _non_empty(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise click.BadParameter("must not be empty")
    return value


@click.group(invoke_without_command=True)
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit."
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], version: bool) -> None:
    """
    chester: track catalog and audio fetcher for the music bot.

    Keeps the SQLite catalog of tracks (titles, artists, origins, tags,
    aliases) and makes sure every catalogued track has a local audio file.

    \b
    BASIC USAGE:
        chester fetch --parallel                 # Download missing audio
        chester add "https://youtu.be/..."       # Catalog a new track
        chester library --sort artist            # Show the catalog
    """
    if version:
        click.echo(f"chester {__version__}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _run(
    ctx: click.Context,
    action: Callable[[Config], None],
    write_logs: bool = True
) -> None:
    """
    Load configuration, set up logging and run `action`, mapping errors
    to exit codes.

    Args:
        ctx: Click context holding the --config path.
        action: Callable receiving the loaded Config.
        write_logs: Write log files to the log directory. Read-only
                    commands log to the console only.

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    try:
        config = load_config(ctx.obj["config_path"])
        setup_logging(config.output.log_directory if write_logs else None)
        action(config)

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.debug(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except ChesterError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.debug(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        shutdown_logging()


def _with_catalog(
    action: Callable[[Catalog, Config], None],
    read_only: bool = False
) -> Callable[[Config], None]:
    def run(config: Config) -> None:
        with open_catalog(config.database.path, read_only=read_only) as catalog:
            action(catalog, config)
    return run


# =============================================================================
# Fetching
# =============================================================================

@cli.command()
@click.option(
    "--parallel",
    is_flag=True,
    help="Download with a pool of worker threads"
)
@click.option(
    "--sequential",
    is_flag=True,
    help="Download one track at a time"
)
@click.option(
    "--jobs",
    type=click.IntRange(min=1),
    default=None,
    metavar="<n>",
    help="Worker threads for --parallel (default: download.jobs from config)"
)
@click.pass_context
def fetch(ctx: click.Context, parallel: bool, sequential: bool, jobs: Optional[int]) -> None:
    """
    Download audio for every catalogued track that has no local file.

    Files are written as <audio_directory>/<track_id>.<ext>, where <ext> is
    the extension FFmpeg gives the codec (vorbis: ogg, aac and alac: m4a).
    Existing files are skipped; failed tracks are logged and listed in
    download_failures_<timestamp>.log, and the command still succeeds.
    The catalog is opened read-only and must already exist.
    """
    if parallel == sequential:
        raise click.UsageError("Specify exactly one of --parallel or --sequential")
    if jobs is not None and sequential:
        raise click.UsageError("--jobs can only be used with --parallel")

    def run(catalog: Catalog, config: Config) -> None:
        fetch_missing_audio(
            catalog,
            Downloader.from_config(config),
            parallel=parallel,
            jobs=jobs or config.download.jobs,
        )

    _run(ctx, _with_catalog(run, read_only=True))


@cli.command()
@click.argument("link", callback=_non_empty)
@click.option("--title", default=None, callback=_non_empty, help="Track title (default: video title)")
@click.option("--artist", default=None, help="Artist")
@click.option("--origin", default=None, help="Origin (game, film, ...)")
@click.pass_context
def add(
    ctx: click.Context,
    link: str,
    title: Optional[str],
    artist: Optional[str],
    origin: Optional[str]
) -> None:
    """Download a YouTube video and add it to the catalog."""
    def run(catalog: Catalog, config: Config) -> None:
        track = add_from_link(
            catalog, Downloader.from_config(config), link,
            title=title, artist=artist, origin=origin
        )
        click.echo(f"Added `{track.id}` as {track.display_name}")

    _run(ctx, _with_catalog(run))


# =============================================================================
# Catalog maintenance
# =============================================================================

@cli.command()
@click.pass_context
def migrate(ctx: click.Context) -> None:
    """Apply pending schema migrations and print the schema version."""
    def run(catalog: Catalog, config: Config) -> None:
        if catalog.applied_migrations:
            applied = ", ".join(str(v) for v in catalog.applied_migrations)
            click.echo(f"Applied migration(s): {applied}")
        click.echo(f"Catalog schema version: {catalog.schema_version}")

    _run(ctx, _with_catalog(run))


@cli.command("import")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, path_type=Path)
)
@click.pass_context
def import_(ctx: click.Context, paths: tuple[Path, ...]) -> None:
    """
    Import per-track JSON records.

    Directories are expanded to the *.json files they contain.
    """
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(path.glob("*.json")))
        else:
            files.append(path)

    def run(catalog: Catalog, config: Config) -> None:
        stats = import_files(catalog, files)
        click.echo(
            f"{stats.imported} imported, {stats.skipped} already present, "
            f"{stats.failed} failed"
        )

    _run(ctx, _with_catalog(run))


@cli.command("set")
@click.argument("field", type=click.Choice(["title", "artist", "origin"]))
@click.argument("track")
@click.argument("value", callback=_non_empty)
@click.pass_context
def set_field(ctx: click.Context, field: str, track: str, value: str) -> None:
    """Set the title, artist or origin of a track."""
    def run(catalog: Catalog, config: Config) -> None:
        setter = {
            "title": catalog.set_title,
            "artist": catalog.set_artist,
            "origin": catalog.set_origin,
        }[field]
        setter(track, value)
        click.echo(f"Set {field} of `{track}` to {value.strip()}")

    _run(ctx, _with_catalog(run))


@cli.group()
def tag() -> None:
    """Add or reset track tags."""


@tag.command("add")
@click.argument("track")
@click.argument("label", metavar="TAG", callback=_non_empty)
@click.pass_context
def tag_add(ctx: click.Context, track: str, label: str) -> None:
    """Tag a track."""
    def run(catalog: Catalog, config: Config) -> None:
        if catalog.add_tag(track, label):
            click.echo(f"Tagged `{track}` with {label.strip()}")
        else:
            click.echo(f"`{track}` is already tagged with {label.strip()}")

    _run(ctx, _with_catalog(run))


@tag.command("reset")
@click.argument("track")
@click.pass_context
def tag_reset(ctx: click.Context, track: str) -> None:
    """Remove every tag from a track."""
    def run(catalog: Catalog, config: Config) -> None:
        removed = catalog.reset_tags(track)
        click.echo(f"Removed {removed} tag(s) from `{track}`")

    _run(ctx, _with_catalog(run))


@cli.command()
@click.argument("track")
@click.argument("alias_id", metavar="ALIAS", callback=_non_empty)
@click.pass_context
def alias(ctx: click.Context, track: str, alias_id: str) -> None:
    """Map an alternate video id (e.g., a re-upload) onto a track."""
    def run(catalog: Catalog, config: Config) -> None:
        if catalog.add_alias(track, alias_id):
            click.echo(f"`{alias_id.strip()}` now resolves to `{catalog.resolve(track)}`")
        else:
            click.echo(f"`{alias_id.strip()}` already resolves to `{catalog.resolve(track)}`")

    _run(ctx, _with_catalog(run))


@cli.command()
@click.argument("track")
@click.pass_context
def remove(ctx: click.Context, track: str) -> None:
    """Delete a track with its tags and aliases. The audio file is kept."""
    def run(catalog: Catalog, config: Config) -> None:
        if not catalog.delete_track(track):
            raise TrackNotFoundError(track)
        click.echo(f"Removed `{track}`")

    _run(ctx, _with_catalog(run))


# =============================================================================
# Listings
# =============================================================================

@cli.command()
@click.option(
    "--sort",
    type=click.Choice(LIBRARY_SORT_KEYS),
    default="title",
    show_default=True,
    help="Sort key"
)
@click.pass_context
def library(ctx: click.Context, sort: str) -> None:
    """List every catalogued track."""
    def run(catalog: Catalog, config: Config) -> None:
        rows = catalog.list_tracks(sort=sort)

        table = Table(title=f"Library ({len(rows)} tracks)", title_justify="left")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Title", no_wrap=True)
        table.add_column("Artist", no_wrap=True)
        table.add_column("Origin", no_wrap=True)
        table.add_column("Tags")

        for row in rows:
            table.add_row(
                row.track_id,
                truncate_display(row.title, LIBRARY_TITLE_WIDTH),
                truncate_display(row.artist, LIBRARY_LABEL_WIDTH),
                truncate_display(row.origin, LIBRARY_LABEL_WIDTH),
                ", ".join(row.tags),
            )

        Console().print(table)

    _run(ctx, _with_catalog(run, read_only=True), write_logs=False)


@cli.command()
@click.argument("query", default="")
@click.pass_context
def search(ctx: click.Context, query: str) -> None:
    """Find tracks by title, artist, origin or tag."""
    def run(catalog: Catalog, config: Config) -> None:
        for display, track_id in catalog.search_tracks(query):
            click.echo(f"{track_id}  {display}")

    _run(ctx, _with_catalog(run, read_only=True), write_logs=False)


@cli.command()
@click.argument("field", type=click.Choice(list(LABEL_TABLES)))
@click.argument("partial", default="")
@click.pass_context
def suggest(ctx: click.Context, field: str, partial: str) -> None:
    """Autocomplete tags, artists or origins."""
    def run(catalog: Catalog, config: Config) -> None:
        for value in catalog.suggest(field, partial):
            click.echo(value)

    _run(ctx, _with_catalog(run, read_only=True), write_logs=False)


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show catalog counts."""
    def run(catalog: Catalog, config: Config) -> None:
        counts = catalog.stats()
        click.echo(f"Schema version:  {catalog.schema_version}")
        click.echo(f"Tracks:          {counts['tracks']}")
        click.echo(f"Artists:         {counts['artists']}")
        click.echo(f"Origins:         {counts['origins']}")
        click.echo(f"Tags:            {counts['tags']}")
        click.echo(f"Aliases:         {counts['aliases']}")

    _run(ctx, _with_catalog(run, read_only=True), write_logs=False)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `chester` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
