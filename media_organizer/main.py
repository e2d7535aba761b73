import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from . import config
from .core import MediaOrganizerApp
from .exceptions import ConfigurationError
from .models import PrepareOptions, RenameOptions, TargetDirMode
from .organization.prepare import current_month, parse_only_month, previous_month
from .progress import TqdmProgress


def setup_logging(log_file: Optional[Path], verbose: bool):
    """Sets up logging to the console and, when given, to a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="media-organizer",
        description="Media Organizer: rename, deduplicate and sort photos and videos by their metadata",
    )

    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--no-progress", action="store_true", help="Do not show progress bars")
    p.add_argument("--workers", type=int, default=config.DEFAULT_WORKERS, help="Number of parallel workers")
    p.add_argument("--timeout", type=float, default=None, help="Stop starting new work after this many seconds")
    p.add_argument("--cache-db", type=Path, default=config.CACHE_DB_PATH, help="SQLite file for the hash cache")
    p.add_argument("--log-file", type=Path, default=None,
                   help=f"Log file (default: <target>/{config.LOG_FILE_NAME} for commands with a target)")

    sub = p.add_subparsers(dest="command", required=True)

    prepare = sub.add_parser("prepare", help="Copy media from source directories into the target")
    prepare.add_argument("target", type=Path, help="Directory you want to copy files to")
    prepare.add_argument("-s", "--source", type=Path, action="append", required=True,
                         help="Directory you want to search files in (repeatable)")
    prepare.add_argument("-e", "--exclude", type=Path, action="append", default=[],
                         help="Directory whose files must not be copied (repeatable)")
    prepare.add_argument("-x", "--exclude-list", type=Path, default=None,
                         help="Text file listing files or directories to exclude, one per line")
    mode = prepare.add_mutually_exclusive_group()
    mode.add_argument("-f", "--force", action="store_true",
                      help="Do not exclude the target directory, overwrite existing files")
    mode.add_argument("--dry-run", action="store_true", help="Only print what would be copied")
    prepare.add_argument("--year", action="store_true", help="Sub-directory with the year of creation")
    prepare.add_argument("--month", action="store_true", help="Sub-directory with the month of creation")
    prepare.add_argument("--fallback", default=None, help="Sub-directory for files without a creation date")
    prepare.add_argument("--use-cache", action="store_true", help="Use the preloaded hash cache")
    only = prepare.add_mutually_exclusive_group()
    only.add_argument("--only-month", default=None, metavar="[YYYY-]MM",
                      help="Only copy files created in this month (current year when no year is given)")
    only.add_argument("--only-current-month", action="store_true", help="Only copy files created this month")
    only.add_argument("--only-previous-month", action="store_true", help="Only copy files created last month")

    rename = sub.add_parser("rename-by-meta", help="Rename files to their metadata hash and resolve duplicates")
    rename.add_argument("target", type=Path, help="Directory with the files to rename")
    rename.add_argument("--dry-run", action="store_true", help="Simulate actions without modifying disk")
    rename.add_argument("--rehash", action="store_true", help="Hash files even if they already have a hashed name")
    rename.add_argument("--create-subdirs", action="store_true", help="Move files into <root>/YYYY/MM")
    rename.add_argument("--root-dir", type=Path, default=None, help="Root for --create-subdirs (default: target)")
    rename.add_argument("--fallback", default=None, help="Sub-directory of the root for files without a date")
    rename.add_argument("--use-cache", action="store_true", help="Use the preloaded hash cache")
    rename.add_argument("--report-csv", type=Path, default=None, help="Write the plan to this CSV file")

    same = sub.add_parser("find-same", help="Find images that are probably the same picture")
    same.add_argument("target", type=Path, help="Directory you want to check")
    same.add_argument("--threshold", type=float, default=config.DEFAULT_SIMILARITY,
                      help="Minimal similarity in percent (0-100)")

    stats = sub.add_parser("meta-stats", help="Show counts of camera models and hashes")
    stats.add_argument("target", type=Path, help="Directory you want to check")

    preload = sub.add_parser("cache-preload", help="Hash files into the persistent cache")
    preload.add_argument("target", type=Path, help="Directory you want to hash")

    sub.add_parser("cache-clear", help="Remove every cached hash")

    return p


def only_month(args) -> Optional[Tuple[int, int]]:
    if args.only_month:
        return parse_only_month(args.only_month)
    if args.only_current_month:
        return current_month()
    if args.only_previous_month:
        return previous_month()
    return None


def run_command(app: MediaOrganizerApp, args) -> int:
    """Dispatches one parsed command. Returns the process exit code."""
    if args.command == "prepare":
        if args.force:
            dir_mode = TargetDirMode.OVERRIDE
        elif args.dry_run:
            dir_mode = TargetDirMode.DRY_RUN
        else:
            dir_mode = TargetDirMode.EXCLUDE
        options = PrepareOptions(
            sources=[s.resolve() for s in args.source],
            target=args.target.resolve(),
            exclude=[e.resolve() for e in args.exclude],
            exclude_list=args.exclude_list,
            mode=dir_mode,
            by_year=args.year,
            by_month=args.month,
            fallback=args.fallback,
            use_cache=args.use_cache,
            only_month=only_month(args),
        )
        summary = app.prepare(options)
        return 0 if summary.ok else 1

    if args.command == "rename-by-meta":
        options = RenameOptions(
            dry_run=args.dry_run,
            rehash=args.rehash,
            create_subdirs=args.create_subdirs,
            root_dir=args.root_dir.resolve() if args.root_dir else None,
            fallback=args.fallback,
            use_cache=args.use_cache,
        )
        summary = app.rename_by_meta(args.target.resolve(), options, report_csv=args.report_csv)
        return 0 if summary.ok else 1

    if args.command == "find-same":
        adepts = app.find_same(args.target.resolve(), args.threshold)
        return 0 if not adepts.errors else 1

    if args.command == "meta-stats":
        app.meta_stats(args.target.resolve())
        return 0

    if args.command == "cache-preload":
        summary = app.cache_preload(args.target.resolve())
        return 0 if summary.ok else 1

    if args.command == "cache-clear":
        app.cache_clear()
        return 0

    raise ConfigurationError(f"Unknown command {args.command}")


def main(argv=None):
    args = build_parser().parse_args(argv)

    # 1. Setup
    log_file = args.log_file
    target = getattr(args, "target", None)
    if log_file is None and target is not None and target.is_dir():
        log_file = target.resolve() / config.LOG_FILE_NAME
    setup_logging(log_file, args.verbose)

    logging.info(f"=== Media Organizer: {args.command} ===")
    if target is not None:
        logging.info(f"Target: {target.resolve()}")

    # 2. Execution
    app = MediaOrganizerApp(
        cache_db=args.cache_db,
        max_workers=args.workers,
        progress=TqdmProgress(disable=args.no_progress),
        timeout=args.timeout,
        verbose=args.verbose,
    )

    try:
        code = run_command(app, args)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except ConfigurationError as e:
        logging.error(str(e))
        sys.exit(1)
    except Exception:
        logging.exception(f"Fatal error during {args.command}.")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
