"""Command-line entry point."""

import argparse
import asyncio
import sys
from typing import List, Optional

from .api_clients import AuthenticationError, GoogleDriveClient
from .config import CompareMode, ConfigLoader, ConfigurationError, get_settings
from .core import SyncEngine, SyncEngineError, SyncReport
from .performance import ProgressSnapshot
from .utils.logging import get_logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drivesync",
        description="Differential sync between Google Drive and a local directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s gdrive:1AbC... ./backup            # Download a Drive folder
  %(prog)s ./reports gdrive:1AbC...           # Upload a local directory
  %(prog)s gdrive:1AbC... ./backup --force-download --concurrency 20
        """
    )

    parser.add_argument("source", help="Source: local path or gdrive:<id>")
    parser.add_argument("destination", help="Destination: local path or gdrive:<id>")

    parser.add_argument(
        "--concurrency", "-c",
        type=int,
        help="Items transferred at once (default: 10)"
    )
    parser.add_argument(
        "--force-download",
        action="store_true",
        help="Transfer every item regardless of the destination"
    )
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Never overwrite an item that already exists"
    )
    parser.add_argument(
        "--check-size-and-time",
        action="store_true",
        help="Treat items with equal size and timestamps within a second as unchanged"
    )

    for family, default in (("docs", "docx"), ("sheets", "xlsx"), ("slides", "pptx"), ("maps", "kml")):
        parser.add_argument(
            f"--{family}-type",
            help=f"Export format for Google {family.capitalize()} (default: {default})"
        )
    parser.add_argument(
        "--fallback-type",
        help="Export format for other Google Workspace documents (default: pdf)"
    )

    parser.add_argument(
        "--abort-on-error",
        action="store_true",
        help="Stop scheduling new transfers after the first failed item"
    )
    parser.add_argument(
        "--no-create-folders",
        action="store_true",
        help="Skip local directories whose Drive folder does not exist yet"
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress reporting and the pre-scan count"
    )
    parser.add_argument(
        "--config",
        help="Sync profile file (YAML or JSON)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug output"
    )

    return parser


def log_progress(snapshot: ProgressSnapshot):
    """Progress sink that writes snapshots to the log."""
    logger = get_logger("drivesync.progress")
    logger.info(
        "Sync progress",
        phase=snapshot.phase.value,
        completed=snapshot.completed,
        total=snapshot.total,
        transferred=snapshot.transferred,
        skipped=snapshot.skipped,
        errors=snapshot.errors,
        current_item=snapshot.current_item,
        throughput=snapshot.throughput_description,
        eta=snapshot.eta_description
    )


def build_config(args: argparse.Namespace):
    """Build the SyncConfig for a parsed command line.

    Raises:
        ConfigurationError: If the options conflict or a format is unknown
    """
    mode = CompareMode.from_flags(
        force=args.force_download,
        skip_existing=args.skip_existing,
        size_and_time=args.check_size_and_time
    )

    overrides = {
        "concurrency": args.concurrency,
        "mode": mode if mode != CompareMode.TIMESTAMP else None,
        "export_formats": {
            "docs": args.docs_type,
            "sheets": args.sheets_type,
            "slides": args.slides_type,
            "maps": args.maps_type,
            "fallback": args.fallback_type,
        },
        "abort_on_error": True if args.abort_on_error else None,
        "create_folders": False if args.no_create_folders else None,
        "prescan": not args.no_progress,
        "progress_sink": None if args.no_progress else log_progress,
    }

    loader = ConfigLoader(get_settings().sync)
    if args.config:
        return loader.load_from_file(args.config, **overrides)
    return loader.load_from_dict({}, **overrides)


async def run(args: argparse.Namespace) -> SyncReport:
    config = build_config(args)

    client = GoogleDriveClient.from_settings(get_settings().google_drive)
    await client.authenticate()

    engine = SyncEngine(client, config)
    return await engine.sync(args.source, args.destination)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line and return the process exit status."""
    args = build_parser().parse_args(argv)

    setup_logging(log_level="DEBUG" if args.verbose else None)
    logger = get_logger("drivesync")

    try:
        report = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("Sync interrupted by user")
        return 130
    except (ConfigurationError, AuthenticationError, SyncEngineError) as e:
        logger.error("Sync failed", error=str(e), error_type=type(e).__name__)
        return 1

    print(
        f"{report.total} items: {report.transferred_count} transferred, "
        f"{report.skipped_count} skipped, {report.error_count} failed"
        + (" (aborted)" if report.aborted else "")
    )
    for outcome in report.outcomes:
        if outcome.is_error:
            print(f"  failed: {outcome.path}: {outcome.error}")
    for failure in report.failures:
        print(f"  failed directory: {failure.path}: {failure.error}")

    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
