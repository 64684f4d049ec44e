#!/usr/bin/env python3
"""silent-witness — aggregate a PHP error log into one row per distinct error."""

import argparse
import json
import logging
import signal
import sys
import time

from silent_witness.config import ConfigError, load_config, load_yaml_config
from silent_witness.cursor import OffsetCursor
from silent_witness.engine import IngestionEngine
from silent_witness.errors import SourceNotFound
from silent_witness.parser import LineParser
from silent_witness.scheduler import build_scheduler, run_ingest
from silent_witness.store import SQLiteAggregateStore

logger = logging.getLogger("silent_witness")

_running = True


def _signal_handler(sig, _frame):
    global _running
    logger.info("Shutdown signal received (signal %d), stopping...", sig)
    _running = False


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="silent-witness",
        description="Tail a PHP error log and de-duplicate its errors into SQLite.",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to YAML config file",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("ingest", help="Read new log lines into the aggregate store")
    export = sub.add_parser("export", help="Print all rows as JSON, most recent first")
    export.add_argument("--output", default=None, help="Write JSON to this file instead of stdout")
    clear = sub.add_parser("clear", help="Delete all rows and reset the log offset")
    clear.add_argument("--yes", action="store_true", help="Confirm the clear")
    destroy = sub.add_parser("destroy", help="Drop the table and delete the log offset")
    destroy.add_argument("--yes", action="store_true", help="Confirm the destroy")
    sub.add_parser("watch", help="Ingest on the configured poll interval until stopped")
    return parser


def build_engine(config) -> IngestionEngine:
    parser = LineParser(
        root_prefix=config.root_prefix,
        engine_tag=config.engine_tag,
        max_message_length=config.max_message_length,
    )
    return IngestionEngine(
        config.log_file,
        OffsetCursor(config.cursor_file),
        SQLiteAggregateStore(config.db_path, config.table_name),
        parser,
    )


def cmd_ingest(engine: IngestionEngine) -> int:
    result = engine.ingest()
    if isinstance(result.error, SourceNotFound):
        print(f"Nothing to ingest: {result.error}")
        return 0
    if result.error is not None:
        print(f"Error: {result.error}", file=sys.stderr)
        if result.new_entries:
            print(f"{result.new_entries} new entries ingested before the failure", file=sys.stderr)
        return 1
    print(f"Ingested {result.new_entries} new entries.")
    return 0


def cmd_export(engine: IngestionEngine, output: str | None) -> int:
    data = json.dumps([row.to_dict() for row in engine.export()], indent=4)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(data + "\n")
        logger.info("Exported to %s", output)
    else:
        print(data)
    return 0


def cmd_clear(engine: IngestionEngine, yes: bool) -> int:
    if not yes:
        print("Error: this deletes all logs. Use: silent-witness clear --yes", file=sys.stderr)
        return 1
    engine.clear(confirm=True)
    print("Logs cleared.")
    return 0


def cmd_destroy(engine: IngestionEngine, yes: bool) -> int:
    if not yes:
        print("Error: this will delete all logs and the database table. "
              "Use: silent-witness destroy --yes", file=sys.stderr)
        return 1
    engine.destroy(confirm=True)
    print("Database table dropped and logs destroyed.")
    return 0


def cmd_watch(engine: IngestionEngine, interval: int) -> int:
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    run_ingest(engine)
    scheduler = build_scheduler(engine, interval)
    scheduler.start()
    logger.info("Watching %s every %ds. Press Ctrl+C to stop.", engine.log_file, interval)

    try:
        while _running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass

    scheduler.shutdown()
    logger.info("Watcher stopped.")
    return 0


def main(argv=None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [silent-witness] %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    args = build_cli_parser().parse_args(argv)
    try:
        config = load_config(load_yaml_config(args.config))
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1
    engine = build_engine(config)

    if args.command == "ingest":
        return cmd_ingest(engine)
    if args.command == "export":
        return cmd_export(engine, args.output)
    if args.command == "clear":
        return cmd_clear(engine, args.yes)
    if args.command == "destroy":
        return cmd_destroy(engine, args.yes)
    return cmd_watch(engine, config.poll_interval)


if __name__ == "__main__":
    sys.exit(main())
