#!/usr/bin/env python3
"""
Partition Migration
Copies every partition of a source collection into a destination collection
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from partition_migrator import (
    ConfigManager,
    ConfigurationError,
    EnumerationError,
    MigrationFailedError,
    MigrationReport,
    MigratorConfig,
    create_migration_engine,
    describe_error,
)
from partition_migrator.config.profiles import PROFILES
from partition_migrator.migrations.pump import PageEvent

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging once for the process"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Partition-parallel collection migration')
    parser.add_argument('--config', '-c', default=None,
                        help='Configuration file (.env, JSON or YAML)')
    parser.add_argument('--profile', '-p', default=None, choices=sorted(PROFILES),
                        help='Migration profile (default: "default")')
    parser.add_argument('--partitions', default=None,
                        help='Comma separated partition ids to migrate (default: all)')
    parser.add_argument('--concurrency', type=int, default=None,
                        help='Maximum number of partitions migrated at once')
    parser.add_argument('--check-connections', action='store_true',
                        help='Connect to source and destination, then exit')
    parser.add_argument('--show-config', action='store_true',
                        help='Print the resolved configuration (secrets masked) and exit')
    parser.add_argument('--list-profiles', action='store_true',
                        help='List available profiles and exit')
    parser.add_argument('--metrics-out', default=None,
                        help='Write run metrics to this file (.json or .csv)')
    parser.add_argument('--log-file', default=None,
                        help='Also write logs to this file')
    return parser


def build_overrides(args: argparse.Namespace) -> dict:
    migration = {}
    if args.partitions:
        migration['partitions'] = args.partitions
    if args.concurrency is not None:
        migration['degree_of_parallelism'] = args.concurrency
    overrides = {'migration': migration}
    if args.log_file:
        overrides['log_file'] = args.log_file
    return overrides


def print_profiles():
    print("🚀 Available Migration Profiles:")
    print()
    for name, profile in PROFILES.items():
        print(f"   • {name}: {profile['description']}")
        for key, value in profile['settings'].items():
            print(f"       {key} = {value}")
    print()
    print("📖 Example Usage:")
    print("   python partition_migrate.py --profile dev")
    print("   python partition_migrate.py --profile bulk --concurrency 32")
    print("   python partition_migrate.py --partitions '\"tenant-a\",\"tenant-b\"'")


def log_banner(config: MigratorConfig):
    migration = config.migration
    logger.info("=" * 60)
    logger.info("🚀 Starting Partition Migration")
    logger.info(f"Source: {config.source_database.namespace}")
    logger.info(f"Destination: {config.destination_database.namespace}")
    logger.info(f"Profile: {config.profile}")
    logger.info(f"Partition key field: {migration.partition_key_field}")
    logger.info(f"Page size: {migration.max_item_count} (buffered {migration.max_buffered_item_count})")
    logger.info(f"Degree of parallelism: {migration.degree_of_parallelism}")
    if migration.partitions:
        logger.info(f"Partitions: {', '.join(migration.partitions)}")
    logger.info("=" * 60)


def log_summary(report: MigrationReport):
    summary = report.summary()
    logger.info("📊 Final Results:")
    logger.info(f"   • Documents transferred: {summary['total_documents']:,}")
    logger.info(f"   • Partitions: {summary['partitions']} "
                f"({len(summary['failed_partitions'])} failed)")
    logger.info(f"   • Conflicts skipped: {summary['conflicts']:,}")
    logger.info(f"   • Throttle retries: {summary['throttle_retries']:,}")
    logger.info(f"   • Peak concurrency: {summary['peak_concurrency']} of {summary['concurrency_limit']}")
    logger.info(f"   • Elapsed: {summary['elapsed_seconds']:.2f}s")
    for pid, result in report.partitions.items():
        if result.failed_writes:
            logger.info(f"   • Failure log: {result.failure_log_path} ({result.failed_writes} entries)")
        if result.error:
            logger.info(f"   • Partition {pid} aborted: {result.error}")


def write_metrics(metrics_out: str, exported: str):
    path = Path(metrics_out)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(exported)
    logger.info(f"Metrics written to {path}")


async def main(argv: Optional[List[str]] = None) -> int:
    """Main function for partition migration"""
    args = build_parser().parse_args(argv)

    if args.list_profiles:
        print_profiles()
        return EXIT_OK

    configure_logging(log_file=args.log_file)

    try:
        config_manager = ConfigManager("MIGRATOR")
        config = config_manager.load_config(args.config, profile=args.profile,
                                            overrides=build_overrides(args))
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return EXIT_FAILED

    configure_logging(config.log_level, config.log_file)

    if args.show_config:
        print(json.dumps(config.to_dict(), indent=2))
        return EXIT_OK

    migration = create_migration_engine(config)
    try:
        if not await migration.initialize():
            logger.error("❌ Failed to connect to source and destination")
            return EXIT_FAILED
        if args.check_connections:
            logger.info("✅ Source and destination are reachable")
            return EXIT_OK

        log_banner(config)
        partitions = await migration.engine.discover()

        pbar = tqdm(
            desc="🚀 Migrating partitions",
            unit="docs",
            unit_scale=True,
            ncols=120,
            dynamic_ncols=True,
            leave=True,
            file=sys.stdout
        )
        finished = 0

        def progress_callback(event: PageEvent):
            nonlocal finished
            pbar.update(event.page_size)
            if event.is_last:
                finished += 1
            pbar.set_postfix_str(f"{finished}/{len(partitions)} partitions")

        try:
            report = await migration.engine.run(partitions, progress_callback=progress_callback)
        finally:
            pbar.close()

        logger.info("🎉 Migration completed!")
        log_summary(report)
        return EXIT_OK

    except MigrationFailedError as e:
        log_summary(e.report)
        logger.error(f"❌ Migration failed: {e}")
        return EXIT_FAILED
    except EnumerationError as e:
        logger.error(f"❌ Partition discovery failed, nothing was migrated: {describe_error(e)}")
        return EXIT_FAILED
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.warning("Migration interrupted by user")
        return EXIT_INTERRUPTED
    finally:
        if args.metrics_out:
            fmt = "csv" if args.metrics_out.lower().endswith(".csv") else "json"
            write_metrics(args.metrics_out, migration.engine.metrics_collector.export_metrics(fmt))
        await migration.cleanup()


def run():
    """Console entry point"""
    if sys.platform != "win32":
        import uvloop
        runner = uvloop.run
    else:
        runner = asyncio.run
    try:
        exit_code = runner(main())
    except KeyboardInterrupt:
        exit_code = EXIT_INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
