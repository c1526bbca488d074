"""
Command-line interface for spot-radio.

This module implements the CLI using Click (through rich-click for the
colored help), exposing the session, the profile cache, the radio and
liked-songs queues and the match cache.

Commands:
    spot-radio login [--sp-dc X --sp-key Y]   Store session cookies and verify them
    spot-radio status                         Session, profile and match cache state
    spot-radio logout                         Forget the session and cached profile
    spot-radio profile [--refresh]            Show the cached taste profile
    spot-radio radio <track>                  Build a radio queue from a seed track
    spot-radio liked                          Resolve Liked Songs page by page
    spot-radio resolve <track>...             Resolve tracks to YouTube Music
    spot-radio override <track> <video>       Pin a YouTube Music video to a track
    spot-radio matches [--manual]             List cached matches
    spot-radio played <track>...              Record local plays (profile Tier 3)

Tracks may be given as ids, spotify:track: URIs or open.spotify.com URLs.

Configuration:
    config.yaml in the current directory (or --config), all keys optional.
    Session cookies can come from SPOT_RADIO_SP_DC / SPOT_RADIO_SP_KEY in
    the environment or a .env file.

Exit Codes:
    0 success, 1 configuration error, 2 database error, 3 Spotify error,
    4 other spot-radio error, 130 interrupted.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.COMMAND_GROUPS = {
    "cli": [
        {
            "name": "Session",
            "commands": ["login", "status", "logout"],
        },
        {
            "name": "Listening",
            "commands": ["radio", "liked", "profile", "played"],
        },
        {
            "name": "Matches",
            "commands": ["resolve", "override", "matches"],
        },
    ],
}

from spot_radio import __version__
from spot_radio.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    ErrorKind,
    SpotifyError,
    SpotRadioError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from spot_radio.core.progress import ResolveProgressBar
from spot_radio.profile import DatabasePlayHistory, ProfileCache
from spot_radio.profile.cache import TASTE_KEY
from spot_radio.queue import LikedSongsQueue, RadioQueue
from spot_radio.recommend import RecommendationEngine
from spot_radio.spotify import SessionManager, SpotifyWebClient, Track
from spot_radio.utils import ensure_directory, extract_spotify_id, extract_youtube_id, format_duration
from spot_radio.youtube import PlayableItem, TrackResolver, YouTubeMusicSearch

logger = get_logger(__name__)


@dataclass
class Services:
    """Everything a command may need, wired for one run."""
    config: Config
    database: Database
    client: SpotifyWebClient
    session: SessionManager
    history: DatabasePlayHistory
    profile_cache: ProfileCache
    engine: RecommendationEngine
    resolver: TrackResolver


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug messages on the console"
)
@click.version_option(__version__, prog_name="spot-radio")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """
    spot-radio: Spotify taste, played from YouTube Music.

    Builds personalized radio queues from your Spotify profile and resolves
    every track to its YouTube Music equivalent.

    \b
    GETTING STARTED:
        spot-radio login --sp-dc <cookie>       # Store the web-player session
        spot-radio radio <spotify-track-url>    # Radio from a seed track
        spot-radio liked                        # Your Liked Songs on YouTube Music

    \b
    MATCHES:
        spot-radio resolve <track>              # Show the match for a track
        spot-radio override <track> <video>     # Pin your own choice
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# =============================================================================
# Command plumbing
# =============================================================================

def _load_configuration(config_path: Path | None) -> Config:
    """
    Load and validate configuration.

    Raises:
        ConfigError: If configuration is invalid.
    """
    return load_config(config_path)


def _initialize_database(config: Config) -> Database:
    """
    Open the SQLite database, creating its directory.

    Raises:
        DatabaseError: If database cannot be initialized.
    """
    ensure_directory(config.storage.database.parent)
    return Database(config.storage.database)


@asynccontextmanager
async def _open_services(config: Config, database: Database) -> AsyncIterator[Services]:
    """Create the Spotify client and everything built on it; close the client afterwards."""
    async with SpotifyWebClient(config.spotify) as client:
        history = DatabasePlayHistory(database)
        session = SessionManager(database, client)
        profile_cache = ProfileCache(client, database, history, config.cache, session)
        yield Services(
            config=config,
            database=database,
            client=client,
            session=session,
            history=history,
            profile_cache=profile_cache,
            engine=RecommendationEngine(client, profile_cache, config.recommend, session),
            resolver=TrackResolver(
                database,
                YouTubeMusicSearch(limit=config.match.search_limit),
                config.match,
            ),
        )


async def _require_session(services: Services) -> None:
    """
    Make sure a valid access token is installed.

    Raises:
        SpotifyError: UNAUTHENTICATED if no token can be obtained.
    """
    if await services.session.ensure_authenticated():
        return
    if services.session.needs_re_login.value:
        message = "Spotify session expired, run 'spot-radio login' again"
    elif not services.session.has_credentials:
        message = "Not logged in, run 'spot-radio login' first"
    else:
        message = "Could not refresh the Spotify access token, try again later"
    raise SpotifyError(message, kind=ErrorKind.UNAUTHENTICATED)


def _run_command(
    ctx: click.Context,
    body: Callable[[Services], Awaitable[None]],
    needs_session: bool = True
) -> None:
    """
    Run an async command body with configuration, logging and services set up.

    Maps spot-radio errors to exit codes and always shuts logging down.
    """
    database: Database | None = None

    try:
        config = _load_configuration(ctx.obj["config_path"])
        setup_logging(config.storage.log_directory, verbose=ctx.obj["verbose"])
        database = _initialize_database(config)

        async def run() -> None:
            async with _open_services(config, database) as services:
                if needs_session:
                    await _require_session(services)
                await body(services)

        asyncio.run(run())

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        logger.error(f"Spotify error ({e.kind.value}): {e.message}")
        sys.exit(3)

    except SpotRadioError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    finally:
        if database is not None:
            database.close()
        shutdown_logging()


def _parse_track_ids(values: tuple[str, ...]) -> list[str]:
    try:
        return [extract_spotify_id(v, "track") for v in values]
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


async def _fetch_track(services: Services, track_id: str) -> Track:
    result = await services.session.authorized(lambda: services.client.track(track_id))
    if not result.ok:
        raise SpotifyError(
            f"Could not fetch track {track_id}: {result.error.message}",
            kind=result.error.kind,
            status=result.error.status,
        )
    return result.value


def _echo_item(index: int, item: PlayableItem) -> None:
    duration = format_duration(item.duration_ms // 1000)
    click.echo(f"{index:>3}. {item.artist} - {item.title} [{duration}]  {item.url}")


def _format_timestamp(epoch_ms: int) -> str:
    if not epoch_ms:
        return "never"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M")


# =============================================================================
# Session commands
# =============================================================================

@cli.command()
@click.option("--sp-dc", default=None, metavar="<cookie>", help="sp_dc cookie (default: SPOT_RADIO_SP_DC)")
@click.option("--sp-key", default=None, metavar="<cookie>", help="sp_key cookie (default: SPOT_RADIO_SP_KEY)")
@click.pass_context
def login(ctx: click.Context, sp_dc: str | None, sp_key: str | None) -> None:
    """Store the web-player session cookies and verify them."""

    async def body(services: Services) -> None:
        cookie = sp_dc or services.config.spotify.sp_dc
        if not cookie:
            cookie = click.prompt("sp_dc cookie", hide_input=True)
        services.session.store_credentials(cookie, sp_key or services.config.spotify.sp_key)

        await _require_session(services)
        me = await services.client.me()
        name = me.value.name if me.ok else "unknown user"
        click.echo(f"Logged in as {name}")

    _run_command(ctx, body, needs_session=False)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show session, profile cache and match cache state (no network)."""

    async def body(services: Services) -> None:
        session = services.session
        click.echo(f"Session cookie:   {'stored' if session.has_credentials else 'missing'}")
        click.echo(f"Token valid until: {_format_timestamp(session.token_expires_at_ms)}")

        taste = services.database.get_json(TASTE_KEY) or {}
        quality = "full" if taste.get("had_high_fidelity") else "degraded" if taste.get("tracks") else "empty"
        click.echo(
            f"Taste profile:    {len(taste.get('tracks') or [])} tracks, "
            f"{len(taste.get('artists') or [])} artists ({quality}), "
            f"refreshed {_format_timestamp(taste.get('refreshed_at_ms') or 0)}"
        )

        stats = services.database.get_match_stats()
        click.echo(
            f"Matches:          {stats['total']} "
            f"({stats['automatic']} automatic, {stats['manual']} manual)"
        )

    _run_command(ctx, body, needs_session=False)


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget the session cookies, the token and the cached profile."""

    async def body(services: Services) -> None:
        services.session.logout()
        services.profile_cache.invalidate()
        services.engine.invalidate_profile()
        click.echo("Logged out")

    _run_command(ctx, body, needs_session=False)


# =============================================================================
# Listening commands
# =============================================================================

@cli.command()
@click.option("--refresh", is_flag=True, help="Refresh from Spotify regardless of age")
@click.option("--invalidate", is_flag=True, help="Drop the cached profile and exit")
@click.option("--followed", is_flag=True, help="Also list followed artists")
@click.option("--related", is_flag=True, help="Also list artists related to followed ones")
@click.option("--limit", default=10, show_default=True, help="Entries per list")
@click.pass_context
def profile(
    ctx: click.Context,
    refresh: bool,
    invalidate: bool,
    followed: bool,
    related: bool,
    limit: int
) -> None:
    """Show the cached taste profile."""

    async def body(services: Services) -> None:
        cache = services.profile_cache
        if invalidate:
            cache.invalidate()
            click.echo("Profile cache invalidated")
            return

        if refresh:
            await cache.force_refresh()

        tracks = await cache.get_top_tracks(limit)
        artists = await cache.get_top_artists(limit)
        click.echo(f"Quality: {cache.quality.value} (refreshed {_format_timestamp(cache.refreshed_at_ms)})")

        click.echo("\nTop tracks:")
        for i, track in enumerate(tracks, 1):
            click.echo(f"{i:>3}. {track.artist_names} - {track.name}")

        click.echo("\nTop artists:")
        for i, artist in enumerate(artists, 1):
            genres = f"  ({', '.join(artist.genres[:3])})" if artist.genres else ""
            click.echo(f"{i:>3}. {artist.name}{genres}")

        if followed:
            click.echo("\nFollowed artists:")
            for i, artist in enumerate(await cache.get_followed_artists(limit), 1):
                click.echo(f"{i:>3}. {artist.name}")

        if related:
            names = sorted(await cache.get_related_artist_names())
            click.echo(f"\nRelated artists ({len(names)}):")
            for name in names[:limit]:
                click.echo(f"     {name}")

    _run_command(ctx, body)


@cli.command()
@click.argument("track")
@click.option("--pages", default=1, show_default=True, help="Batches to resolve after the seed")
@click.pass_context
def radio(ctx: click.Context, track: str, pages: int) -> None:
    """Build a personalized radio queue from a seed TRACK."""
    track_id = _parse_track_ids((track,))[0]

    async def body(services: Services) -> None:
        seed = await _fetch_track(services, track_id)
        queue = RadioQueue(
            seed,
            services.engine,
            services.resolver,
            services.client,
            services.config.queue,
            session=services.session,
        )

        first = await queue.start()
        if not first:
            click.echo(f"No YouTube Music match for '{seed.name}'", err=True)
            return

        if queue.fallback.value.active:
            click.echo(f"Using basic queue: {queue.fallback.value.reason}", err=True)

        index = 1
        _echo_item(index, first[0])
        page = 0
        while queue.has_more and page < pages:
            for item in await queue.next_page():
                index += 1
                _echo_item(index, item)
            page += 1

        remaining = len(queue.queued_tracks) - (index - 1)
        if queue.has_more:
            click.echo(f"... {remaining} more tracks queued")

    _run_command(ctx, body)


@cli.command()
@click.option("--pages", default=1, show_default=True, help="Library pages to resolve")
@click.pass_context
def liked(ctx: click.Context, pages: int) -> None:
    """Resolve Liked Songs to YouTube Music, one page at a time."""

    async def body(services: Services) -> None:
        queue_config = services.config.queue
        queue = LikedSongsQueue(
            services.client,
            services.resolver,
            page_size=queue_config.liked_page_size,
            batch_size=queue_config.batch_size,
            session=services.session,
        )

        index = 0
        items = await queue.start()
        page = 1
        while True:
            for item in items:
                index += 1
                _echo_item(index, item)
            if not queue.has_more or page >= pages:
                break
            items = await queue.next_page()
            page += 1

        click.echo(f"{index} playable of {queue.total} liked songs" + (" (more available)" if queue.has_more else ""))

    _run_command(ctx, body)


@cli.command()
@click.argument("tracks", nargs=-1, required=True)
@click.pass_context
def played(ctx: click.Context, tracks: tuple[str, ...]) -> None:
    """Record a local play of each TRACK (feeds the profile's local history)."""
    track_ids = _parse_track_ids(tracks)

    async def body(services: Services) -> None:
        for track_id in track_ids:
            track = await _fetch_track(services, track_id)
            services.history.record_play(track)
            click.echo(f"Recorded play: {track.artist_names} - {track.name}")

    _run_command(ctx, body)


# =============================================================================
# Match commands
# =============================================================================

@cli.command()
@click.argument("tracks", nargs=-1, required=True)
@click.option("--hide", multiple=True, metavar="<type>", help="Hide a content type (ATV, OMV, UGC, ...)")
@click.pass_context
def resolve(ctx: click.Context, tracks: tuple[str, ...], hide: tuple[str, ...]) -> None:
    """Resolve TRACKS to YouTube Music and cache the matches."""
    track_ids = _parse_track_ids(tracks)

    async def body(services: Services) -> None:
        if hide:
            services.resolver.hidden_video_types = set(services.resolver.hidden_video_types) | set(hide)

        fetched = []
        for track_id in track_ids:
            result = await services.client.track(track_id)
            if result.ok:
                fetched.append(result.value)
            else:
                click.echo(f"Skipping {track_id}: {result.error.message}", err=True)

        resolved: list[PlayableItem] = []
        with ResolveProgressBar(total=len(fetched)) as progress:
            async for batch, items in services.resolver.resolve_batches(fetched, services.config.queue.batch_size):
                resolved.extend(items)
                progress.update(resolved=len(items), unmatched=len(batch) - len(items))

        for index, item in enumerate(resolved, 1):
            _echo_item(index, item)

    _run_command(ctx, body)


@cli.command()
@click.argument("track")
@click.argument("video")
@click.option("--title", default="", help="Display title (default: the Spotify title)")
@click.option("--artist", default="", help="Display artist (default: the Spotify artists)")
@click.pass_context
def override(ctx: click.Context, track: str, video: str, title: str, artist: str) -> None:
    """Pin YouTube Music VIDEO (id or URL) as the match for TRACK."""
    track_id = _parse_track_ids((track,))[0]
    try:
        video_id = extract_youtube_id(video)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    async def body(services: Services) -> None:
        previous = services.resolver.get_match(track_id)
        services.resolver.override_match(track_id, video_id, title, artist)
        if previous is not None and previous.youtube_id != video_id:
            click.echo(f"Replaced {previous.youtube_id} with {video_id}")
        else:
            click.echo(f"Pinned {video_id} for {track_id}")

    _run_command(ctx, body, needs_session=False)


@cli.command()
@click.option("--manual", is_flag=True, help="Only manual overrides")
@click.option("--youtube-id", default=None, metavar="<video>", help="Tracks mapped to this video")
@click.option("--limit", default=50, show_default=True, help="Rows to show")
@click.pass_context
def matches(ctx: click.Context, manual: bool, youtube_id: str | None, limit: int) -> None:
    """List cached Spotify -> YouTube Music matches, newest first."""

    async def body(services: Services) -> None:
        if youtube_id:
            rows = [m.to_row() for m in services.resolver.matches_for_youtube_id(extract_youtube_id(youtube_id))]
        else:
            rows = services.database.list_matches(manual_only=manual, limit=limit)

        for row in rows[:limit]:
            flag = "manual" if row["is_manual_override"] else f"{row['match_score']:.2f}"
            click.echo(
                f"{row['spotify_id']} -> {row['youtube_id']}  [{flag}]  "
                f"{row['artist']} - {row['title']}"
            )
        if not rows:
            click.echo("No matches cached")

    _run_command(ctx, body, needs_session=False)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `spot-radio` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
