"""
Bulk Import - command line entry point

Usage:
    bulk-import
    bulk-import --config config/bulk_import.yml
    bulk-import --dry-run
    bulk-import --log-level DEBUG
"""

import sys
import argparse
import logging
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from .bulk_import import BulkImportAction, build_copy_statement
from .config import FailureCollector, LoadConfig, load_config_file
from .errors import BulkLoadError
from .logging_config import setup_logging_from_config
from .metrics import ROWS_INSERTED_GAUGE, ROWS_REJECTED_GAUGE, InMemoryMetrics
from .storage import LocalFileStorage


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Bulk import files into a database table via COPY')
    parser.add_argument(
        '--config',
        default=None,
        help='Path to action config YAML (default: $BULK_IMPORT_CONFIG_PATH or config/bulk_import.yml)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate config and list files, do not touch the database'
    )
    parser.add_argument(
        '--log-level',
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Override the configured log level'
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run one bulk import; returns the process exit code"""
    args = parse_args(argv)
    load_dotenv()

    try:
        raw = load_config_file(args.config)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        print("Please copy config/bulk_import.example.yml to config/bulk_import.yml")
        return 1
    except BulkLoadError as e:
        print(f"ERROR: {e}")
        return 1

    setup_logging_from_config(raw.get('logging', {}), args.log_level)
    logger = logging.getLogger(__name__)

    start_time = datetime.now()
    logger.info("=" * 80)
    logger.info("Bulk Import Started")
    logger.info(f"Start time: {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info("=" * 80)

    try:
        config = LoadConfig.from_dict(raw)
        storage = LocalFileStorage()

        if args.dry_run:
            collector = FailureCollector()
            BulkImportAction(config, storage=storage).configure(collector)
            collector.get_or_throw()

            logger.info("DRY RUN MODE - nothing will be loaded")
            logger.info(f"Copy statement: {build_copy_statement(config)}")
            for handle in storage.list_entries(config.path):
                logger.info(f"  - {handle} ({handle.size_bytes:,} bytes)")
            return 0

        metrics = InMemoryMetrics()
        BulkImportAction(config, storage=storage, metrics=metrics).run()

    except BulkLoadError as e:
        logger.error(f"FATAL ERROR: {e}", exc_info=True)
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1

    duration = (datetime.now() - start_time).total_seconds()
    logger.info("=" * 80)
    logger.info("BULK IMPORT SUMMARY")
    logger.info("=" * 80)
    logger.info(f"Table:              {config.table_name}")
    logger.info(f"Rows inserted:      {metrics.gauges.get(ROWS_INSERTED_GAUGE, 0):,}")
    logger.info(f"Rows rejected:      {metrics.gauges.get(ROWS_REJECTED_GAUGE, 0):,}")
    logger.info(f"Duration:           {duration:.2f} seconds")
    logger.info("=" * 80)
    return 0


if __name__ == "__main__":
    sys.exit(main())
