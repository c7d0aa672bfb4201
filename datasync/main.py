"""
Data Sync Command Line

Runs the sync engine against a REST backend: periodically refreshes the
configured resource types, logs every change notification, and prints the
final sync status as JSON.

Usage:
    datasync --base-url http://localhost:5000/api --once
    datasync --resource issues=/issues:1 --resource categories=/categories:2
    datasync --interval 10 --log-level DEBUG
"""

import argparse
import json
import logging
import sys
import threading
from typing import List, Optional

from datasync.app.data_sync_service import DataSyncService
from datasync.config.app_config import AppConfig, ResourceType
from datasync.sync.notification_bus import CONFLICT_TOPIC, INCONSISTENCY_TOPIC


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Setup logging to stdout."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    return logging.getLogger("datasync")


def parse_resource(value: str) -> ResourceType:
    """
    Parse a NAME=ENDPOINT[:PRIORITY] resource argument.

    Raises:
        argparse.ArgumentTypeError: If the value is malformed
    """
    name, sep, rest = value.partition('=')
    if not sep or not name or not rest:
        raise argparse.ArgumentTypeError(f"Expected NAME=ENDPOINT[:PRIORITY], got '{value}'")

    endpoint, _, priority = rest.rpartition(':')
    if not endpoint or not priority.isdigit():
        return ResourceType(name=name, endpoint=rest)
    return ResourceType(name=name, endpoint=endpoint, priority=int(priority))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Synchronize resource collections from a REST backend',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--base-url', help='API base URL (default: $DATASYNC_API_URL or localhost)')
    parser.add_argument('--api-key', help='Bearer token for the API')
    parser.add_argument('--interval', type=float, help='Seconds between sync passes')
    parser.add_argument(
        '--resource', type=parse_resource, action='append', default=[],
        metavar='NAME=ENDPOINT[:PRIORITY]', help='Resource type to sync (repeatable)'
    )
    parser.add_argument('--once', action='store_true', help='Run a single sync pass and exit')
    parser.add_argument('--log-level', default='INFO', help='Logging level')
    return parser


def build_config(args: argparse.Namespace) -> AppConfig:
    config = AppConfig.from_env()
    if args.base_url:
        config.transport.base_url = args.base_url
    if args.api_key:
        config.transport.api_key = args.api_key
    if args.interval:
        config.scheduler.interval = args.interval
    if args.resource:
        config.scheduler.resources = list(args.resource)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the data sync command line.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_level)
    config = build_config(args)

    service = DataSyncService(config)
    topics = [r.name for r in config.scheduler.resources] + [CONFLICT_TOPIC, INCONSISTENCY_TOPIC]
    for topic in topics:
        service.subscribe(topic, lambda event: logger.info(
            f"{event.data_type}: {event.action} ({_describe(event.data)})"
        ))

    try:
        if args.once:
            service.scheduler.tick()
            service.wait_idle()
        else:
            service.enable_sync()
            logger.info("Data sync is running. Press Ctrl+C to stop.")
            threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Shutdown signal received. Exiting gracefully...")
    finally:
        print(json.dumps(service.get_sync_status().to_dict(), indent=2))
        service.close()
    return 0


def _describe(data) -> str:
    if isinstance(data, list):
        return f"{len(data)} records"
    if data is None:
        return "no data"
    return "1 record"


if __name__ == "__main__":
    sys.exit(main())
