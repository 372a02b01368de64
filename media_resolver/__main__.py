"""
Command-line entry point.

    python -m media_resolver extract page.json [--download-dir D] [--cookies F] [--no-download] [--verbose]
    python -m media_resolver prefetch page.json
    python -m media_resolver config get KEY
    python -m media_resolver config set KEY VALUE [--encrypt]
    python -m media_resolver history [--limit N]
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from media_resolver import __version__
from media_resolver.core.context import AppDirs
from media_resolver.core.database import DatabaseManager
from media_resolver.core.dispatcher import Command, dispatch
from media_resolver.core.engine import MediaResolutionEngine
from media_resolver.core.evidence import SnapshotEvidenceSource
from media_resolver.core.settings import SESSION_ID_KEY, EngineSettings
from media_resolver.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

# Values never printed back in clear text
SECRET_KEYS = {SESSION_ID_KEY}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="media_resolver",
        description="Resolve and download the media currently shown on an Instagram page snapshot.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--home",
        type=Path,
        default=None,
        help="Base directory for data, logs and downloads (default: ~/.media-resolver).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    extract = sub.add_parser("extract", help="Resolve the current media and download it.")
    extract.add_argument("snapshot", type=Path, help="Captured page state (JSON).")
    extract.add_argument("--download-dir", type=Path, default=None, help="Where to save media.")
    extract.add_argument("--cookies", type=Path, default=None, help="cookies.txt (Netscape or LWP format).")
    extract.add_argument("--no-download", action="store_true", help="Only print the resolution.")
    extract.add_argument("--verbose", action="store_true", help="DEBUG logging for every category.")

    prefetch = sub.add_parser("prefetch", help="Run the speculative warm-up and report cache state.")
    prefetch.add_argument("snapshot", type=Path, help="Captured page state (JSON).")
    prefetch.add_argument("--cookies", type=Path, default=None, help="cookies.txt (Netscape or LWP format).")
    prefetch.add_argument("--verbose", action="store_true", help="DEBUG logging for every category.")

    config = sub.add_parser("config", help="Read or change stored settings.")
    config.add_argument("op", choices=("get", "set"))
    config.add_argument("key")
    config.add_argument("value", nargs="?")
    config.add_argument("--encrypt", action="store_true", help="Store the value encrypted.")

    history = sub.add_parser("history", help="List recently saved media.")
    history.add_argument("--limit", type=int, default=20)

    return parser


async def _run_engine(args, db: DatabaseManager, dirs: AppDirs) -> int:
    settings = EngineSettings.from_db(db)
    source = SnapshotEvidenceSource.from_file(args.snapshot)
    download_dir = getattr(args, "download_dir", None)
    if download_dir is None and not settings.download_dir:
        download_dir = dirs.downloads

    engine = MediaResolutionEngine.from_settings(
        source,
        settings,
        db_manager=db,
        download_dir=download_dir,
        cookie_jar_path=args.cookies,
    )
    async with engine:
        if args.command == "prefetch":
            result = await dispatch(engine, {"action": Command.PREFETCH_MEDIA.value})
            # Let the backend lookup finish so the cache state is meaningful.
            await asyncio.gather(*(engine.context.in_flight(key) for key in engine.context.pending_keys()))
            payload = result.to_dict()
            payload["cache"] = {
                "dom": _cache_state(engine.context.cache.dom.entry),
                "api": _cache_state(engine.context.cache.api.entry),
            }
        else:
            result = await dispatch(
                engine,
                {"action": Command.EXTRACT_MEDIA.value},
                download=not args.no_download,
            )
            payload = result.to_dict()

    print(json.dumps(payload, indent=2))
    return 0 if result.ok else 1


def _cache_state(entry):
    if entry is None:
        return None
    return {"key": entry.key, "media": entry.media_info.to_dict()}


def _run_history(args, db: DatabaseManager) -> int:
    for row in db.get_recent_downloads(args.limit):
        who = f" @{row['account_name']}" if row["account_name"] else ""
        print(f"{row['downloaded_at']}  {row['media_type'] or '?':5}  {row['source'] or '-'}{who}  {row['local_path']}")
    return 0


def _run_config(args, db: DatabaseManager) -> int:
    if args.op == "get":
        value = db.get_config(args.key)
        if value is None:
            print(f"{args.key} is not set", file=sys.stderr)
            return 1
        print("********" if args.key in SECRET_KEYS else value)
        return 0

    if args.value is None:
        print("ERROR: config set needs a VALUE.", file=sys.stderr)
        return 2
    db.set_config(args.key, args.value, encrypt=args.encrypt or args.key in SECRET_KEYS)
    print(f"{args.key} updated")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    dirs = AppDirs(args.home)
    db = DatabaseManager(dirs.data / "data.db").connect()
    try:
        if args.command == "config":
            return _run_config(args, db)
        if args.command == "history":
            return _run_history(args, db)

        setup_logging(db_manager=db, log_dir=dirs.logs, verbose=args.verbose)
        return asyncio.run(_run_engine(args, db, dirs))
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
