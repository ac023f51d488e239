"""
testlog-ingest CLI - operator entrypoint.

Commands:
- run: watch a folder and ingest test logs until interrupted (or once)
- parse: parse a single file and print the record as JSON
- show: print the stored record summary for a key

Exit Codes:
===========
- 0: Success
- 1: Ingestion/parse error, record not found, or invalid configuration
"""

import argparse
import json
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .config.errors import ConfigError
from .config.settings import IngestSettings, load_settings
from .ingestion.archive import FileArchiver
from .ingestion.service import IngestionService
from .ingestion.versioning import VersioningResolver
from .monitoring.server import MonitorContext, start_monitor_server
from .observability.events import EventLog, EventType
from .observability.logging_config import configure_logging
from .observability.metrics import IngestionMetrics
from .parsing.errors import FormatError
from .parsing.identity import with_fingerprint
from .parsing.parser import TestLogParser
from .persistence.errors import PersistenceError
from .persistence.manager import SqliteRecordStore
from .watchfolders.engine import ProcessingLoop
from .watchfolders.errors import WatchFolderError, WatchFolderNotFoundError
from .watchfolders.observer import WatchFolderObserver
from .watchfolders.queue import WorkQueue
from .watchfolders.scanner import FileScanner
from .watchfolders.stability import FileStabilityTracker

logger = logging.getLogger(__name__)

DEFAULT_ONCE_TIMEOUT = 300.0


@dataclass
class ServiceComponents:
    """Everything `run` wires together."""

    settings: IngestSettings
    store: SqliteRecordStore
    metrics: IngestionMetrics
    events: EventLog
    queue: WorkQueue
    tracker: FileStabilityTracker
    scanner: FileScanner
    service: IngestionService
    loop: ProcessingLoop


def build_components(settings: IngestSettings) -> ServiceComponents:
    """
    Wire settings -> store -> resolver -> archiver -> service -> loop.

    Raises:
        WatchFolderNotFoundError: If the watch folder does not exist
        PersistenceError: If the database cannot be opened
    """
    watch_root = Path(settings.watcher.path)
    if not watch_root.is_dir():
        raise WatchFolderNotFoundError(f"Watch folder path does not exist: {watch_root}")

    processing = settings.processing
    metrics = IngestionMetrics()
    events = EventLog()
    store = SqliteRecordStore(settings.database.path)

    archiver = FileArchiver(settings.archive, watch_root)
    service = IngestionService(
        parser=TestLogParser(decimal_separator=settings.parsing.decimal_separator),
        resolver=VersioningResolver(store, max_attempts=processing.store_max_attempts),
        archiver=archiver,
        metrics=metrics,
        events=events,
        encoding=settings.parsing.encoding,
        read_retries=processing.read_retries,
        read_retry_delay=processing.read_retry_delay_ms / 1000.0,
    )

    queue = WorkQueue()
    tracker = FileStabilityTracker()
    scanner = FileScanner(
        watch_root,
        pattern=settings.watcher.pattern,
        recursive=settings.watcher.include_subdirectories,
        excluded_roots=archiver.archive_roots(),
    )
    loop = ProcessingLoop(
        queue,
        tracker,
        service,
        stable_wait_ms=processing.stable_wait_ms,
        max_concurrency=processing.max_concurrency,
        idle_delay=processing.idle_delay_ms / 1000.0,
        recheck_delay=processing.recheck_delay_ms / 1000.0,
        error_backoff=processing.error_backoff_ms / 1000.0,
        metrics=metrics,
        events=events,
    )

    return ServiceComponents(
        settings=settings,
        store=store,
        metrics=metrics,
        events=events,
        queue=queue,
        tracker=tracker,
        scanner=scanner,
        service=service,
        loop=loop,
    )


def initial_scan(components: ServiceComponents) -> int:
    """Queue every matching file already in the watch folder."""
    events = components.events
    events.record(EventType.INITIAL_SCAN_STARTED, path=str(components.scanner.root))
    try:
        found = components.scanner.scan()
        for path in found:
            components.loop.path_observed(path)
    except (OSError, ValueError) as e:
        events.record(EventType.INITIAL_SCAN_ERROR, path=str(components.scanner.root), error=str(e))
        return 0
    events.record(EventType.INITIAL_SCAN_COMPLETED, path=str(components.scanner.root), files=len(found))
    return len(found)


def _install_signal_handlers(loop: ProcessingLoop) -> None:
    def _handle(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        loop.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def cmd_run(args: argparse.Namespace) -> int:
    """Run the ingestion service."""
    overrides = {}
    if args.watch:
        overrides["watcher"] = {"path": str(Path(args.watch).resolve())}
    if args.max_concurrency is not None:
        overrides["processing"] = {"max_concurrency": args.max_concurrency}

    try:
        settings = load_settings(args.config, **overrides)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.logging.level)

    try:
        components = build_components(settings)
    except (WatchFolderError, PersistenceError) as e:
        logger.error(f"Cannot start: {e}")
        return 1

    loop = components.loop
    events = components.events
    observer: Optional[WatchFolderObserver] = None

    _install_signal_handlers(loop)

    if settings.monitor.enabled:
        start_monitor_server(
            MonitorContext(
                metrics=components.metrics,
                events=events,
                queue=components.queue,
                loop=loop,
                store=components.store,
            ),
            host=settings.monitor.host,
            port=settings.monitor.port,
        )

    events.record(
        EventType.SERVICE_STARTED,
        path=settings.watcher.path,
        pattern=settings.watcher.pattern,
        once=args.once,
    )

    had_errors = False
    try:
        if settings.watcher.initial_scan:
            initial_scan(components)

        if args.once:
            results = loop.run_once(timeout=args.timeout)
            had_errors = any(result.is_error for result in results)
        else:
            if settings.watcher.use_notifications:
                observer = WatchFolderObserver(components.scanner, loop.path_observed)
                observer.start()
                events.record(EventType.NOTIFICATIONS_STARTED, path=settings.watcher.path)
            loop.run()
    finally:
        events.record(EventType.SERVICE_STOPPING)
        if observer is not None:
            observer.stop()
        logger.info(f"Ingestion summary - {components.metrics.summary()}")
        events.record(EventType.SERVICE_STOPPED)

    return 1 if had_errors else 0


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse one file and print the record (without raw text) as JSON."""
    path = Path(args.file)
    try:
        raw_text = path.read_text(encoding=args.encoding)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
        return 1

    parser = TestLogParser(decimal_separator=args.decimal_separator)
    try:
        record = with_fingerprint(parser.parse(raw_text, path.name))
    except FormatError as e:
        print(f"Format error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(record.model_dump(mode="json", exclude={"raw_text"}), indent=2))
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Print the stored record summary for a key."""
    try:
        settings = load_settings(args.config)
        store = SqliteRecordStore(settings.database.path)
        record = store.load(args.key)
    except (ConfigError, PersistenceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if record is None:
        print(f"Record not found: {args.key}", file=sys.stderr)
        return 1

    summary = {
        "id": record.id,
        "version": record.version,
        "content_sha256": record.content_sha256,
        "device_serial": record.identity.device_serial,
        "timestamp_local": record.timestamp_local.isoformat(),
        "original_file_name": record.source.original_file_name,
        "ingested_at_utc": record.source.ingested_at_utc.isoformat(),
        "overall_result": record.summary.overall_result.value
        if record.summary and record.summary.overall_result
        else None,
        "signal_blocks": len(record.signal_blocks),
        "superseded_versions": [
            v.model_dump(mode="json") for v in record.superseded_versions
        ],
    }
    print(json.dumps(summary, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="testlog-ingest",
        description="Ingest factory final-test log files into a versioned record store",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")

    # Run command
    parser_run = subparsers.add_parser("run", help="Watch a folder and ingest test logs")
    parser_run.add_argument(
        "--config",
        default=None,
        help="Path to JSON config file (default: $TESTLOG_INGEST_CONFIG)",
    )
    parser_run.add_argument(
        "--once",
        action="store_true",
        help="Ingest files already present and exit (no live watching)",
    )
    parser_run.add_argument("--watch", default=None, help="Override the watch folder path")
    parser_run.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        metavar="N",
        help="Override the maximum number of concurrent ingestions",
    )
    parser_run.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_ONCE_TIMEOUT,
        metavar="SECONDS",
        help=f"With --once, give up on files still unstable after this long (default: {DEFAULT_ONCE_TIMEOUT:.0f})",
    )
    parser_run.set_defaults(func=cmd_run)

    # Parse command
    parser_parse = subparsers.add_parser("parse", help="Parse one test log file and print it as JSON")
    parser_parse.add_argument("file", help="Path to test log file")
    parser_parse.add_argument(
        "--decimal-separator",
        default=",",
        help="Decimal separator used in the file (default: ',')",
    )
    parser_parse.add_argument("--encoding", default="utf-8-sig", help="File encoding (default: utf-8-sig)")
    parser_parse.set_defaults(func=cmd_parse)

    # Show command
    parser_show = subparsers.add_parser("show", help="Show a stored record by key")
    parser_show.add_argument("key", help="Record key, e.g. SN123-20240315-140509")
    parser_show.add_argument(
        "--config",
        default=None,
        help="Path to JSON config file (default: $TESTLOG_INGEST_CONFIG)",
    )
    parser_show.set_defaults(func=cmd_show)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
