"""TrackCer command line.

Usage:
    trackcer app:fetch-spotify-history
    trackcer app:fetch-apple-music-history
    trackcer app:fetch-listening-history
    trackcer app:fetch-producers
    trackcer artists:cache-images [--force] [--limit N] [--delay MS]
    trackcer apple-music:token [--save]
    trackcer serve [--host HOST] [--port PORT]
    trackcer db:init

Every command reads the same TRACKCER_* settings as the API.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

from trackcer.application.services.factory import ServiceFactory
from trackcer.application.workers import HistoryScheduler, JobRunner
from trackcer.config import Settings, get_settings
from trackcer.domain.exceptions import DomainException
from trackcer.infrastructure.integrations import generate_developer_token
from trackcer.infrastructure.lifecycle import ensure_sqlite_directory
from trackcer.infrastructure.observability import configure_logging
from trackcer.infrastructure.persistence import Database

logger = logging.getLogger(__name__)

DEVELOPER_TOKEN_ENV = "TRACKCER_APPLE_MUSIC__DEVELOPER_TOKEN"

# CLI command -> scheduler job names, run in this order.
FETCH_COMMANDS: dict[str, tuple[str, ...]] = {
    "app:fetch-spotify-history": ("spotify",),
    "app:fetch-apple-music-history": ("apple-music",),
    "app:fetch-listening-history": ("apple-music", "spotify"),
    "app:fetch-producers": ("producers",),
}


@asynccontextmanager
async def _job_runner(settings: Settings) -> AsyncIterator[JobRunner]:
    ensure_sqlite_directory(settings)
    db = Database(settings)
    factory = ServiceFactory.from_settings(settings)
    try:
        await db.create_tables()
        yield JobRunner(db, factory)
    finally:
        await factory.close()
        await db.close()


async def run_fetch(settings: Settings, job_names: Sequence[str]) -> int:
    """Run scheduler jobs once over all eligible users.

    Returns:
        Exit code, 1 if any user failed
    """
    failed = 0
    async with _job_runner(settings) as runner:
        scheduler = HistoryScheduler(runner, settings.scheduler)
        jobs = {job.name: job for job in scheduler.jobs}
        for name in job_names:
            stats = await scheduler.run_job(jobs[name])
            if stats is None:
                continue
            print(
                f"{name}: {stats['users']} users, "
                f"{stats['succeeded']} succeeded, {stats['failed']} failed"
            )
            failed += stats["failed"]
    return 1 if failed else 0


async def cache_artist_images(
    settings: Settings, force: bool, limit: int | None, delay_ms: int
) -> int:
    async with _job_runner(settings) as runner:
        async with runner.db.session_scope() as session:
            images = runner.factory.artist_images(session)
            if force:
                names = await images.unique_artist_names()
            else:
                names = await images.missing_artist_names()
        if limit is not None:
            names = names[:limit]

        if not names:
            print("All artists already have images")
            return 0

        print(f"Caching images for {len(names)} artists")
        stats = await runner.cache_artist_images(
            names, force=force, delay_seconds=delay_ms / 1000
        )

    print(
        f"Processed {stats['processed']}: {stats['cached']} cached, "
        f"{stats['failed']} failed, {stats['skipped']} skipped"
    )
    return 0


def write_env_value(env_file: Path, key: str, value: str) -> None:
    """Set KEY=value in an env file, replacing an existing line for the key."""
    lines = env_file.read_text().splitlines() if env_file.exists() else []
    entry = f"{key}={value}"
    for index, line in enumerate(lines):
        if line.split("=", 1)[0].strip() == key:
            lines[index] = entry
            break
    else:
        lines.append(entry)
    env_file.write_text("\n".join(lines) + "\n")


def apple_music_token(settings: Settings, save: bool, env_file: Path) -> int:
    token = generate_developer_token(settings.apple_music)
    print(token)
    if save:
        write_env_value(env_file, DEVELOPER_TOKEN_ENV, token)
        print(f"Saved {DEVELOPER_TOKEN_ENV} to {env_file}", file=sys.stderr)
    return 0


async def init_db(settings: Settings) -> int:
    ensure_sqlite_directory(settings)
    db = Database(settings)
    try:
        await db.create_tables()
    finally:
        await db.close()
    print(f"Database ready: {settings.database.url}")
    return 0


def serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("trackcer.main:app", host=host, port=port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trackcer", description=__doc__.splitlines()[0])
    commands = parser.add_subparsers(dest="command", required=True)

    for command in FETCH_COMMANDS:
        commands.add_parser(command, help=f"Run {', '.join(FETCH_COMMANDS[command])} once")

    images = commands.add_parser(
        "artists:cache-images", help="Cache images for artists in the listening history"
    )
    images.add_argument("--force", action="store_true", help="Refresh existing images too")
    images.add_argument("--limit", type=int, default=None, help="Max artists to process")
    images.add_argument(
        "--delay", type=int, default=200, help="Delay between lookups in milliseconds"
    )

    token = commands.add_parser("apple-music:token", help="Generate a developer token")
    token.add_argument("--save", action="store_true", help=f"Write {DEVELOPER_TOKEN_ENV} to .env")
    token.add_argument("--env-file", type=Path, default=Path(".env"))

    server = commands.add_parser("serve", help="Run the API server")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", type=int, default=8000)

    commands.add_parser("db:init", help="Create the database tables")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        return serve(args.host, args.port)

    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )

    try:
        if args.command in FETCH_COMMANDS:
            return asyncio.run(run_fetch(settings, FETCH_COMMANDS[args.command]))
        if args.command == "artists:cache-images":
            return asyncio.run(
                cache_artist_images(settings, args.force, args.limit, args.delay)
            )
        if args.command == "apple-music:token":
            return apple_music_token(settings, args.save, args.env_file)
        if args.command == "db:init":
            return asyncio.run(init_db(settings))
    except DomainException as e:
        logger.error("Command failed", extra={"command": args.command, "error": e.message})
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
