#!/usr/bin/env python3
"""
Content Store Migration Tool - Main CLI Entry Point

This script provides the command-line interface for migrating content store
catalogs from the source author instance into the target document store:
extraction of the component hierarchy, merge of sub-stores into their main
store, flattening into sheet rows, document generation and upload with
optional preview and publish.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List

# Add project root to Python path for relative imports
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

# Project imports
from config_loader import ConfigLoader, WORKFLOWS
from content_paths import normalize_store_path
from fetchers import FetcherError, read_manifest
from logger import setup_logging, log_section, log_config
from orchestrator import MigrationOrchestrator, MigrationReport

# Version
__version__ = "1.0.0"

DEFAULT_MANIFEST_NAME = 'store-manifest.txt'
REPORT_NAME = 'migration-report.json'


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Migrate content store catalogs to the target document store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Migrate the default store end to end
  python migrate.py --config config.yaml

  # Discover the stores linked from a catalog and write a manifest
  python migrate.py --store /content/share/us/en/all-content-stores --fetch-store-links

  # Extract every store of a manifest, following store links
  python migrate.py --input DATA/store-manifest.txt --workflow extract --recursive

  # Rebuild documents from extracted data only
  python migrate.py --input DATA/store-manifest.txt --workflow generate

  # Upload, preview and publish with 8 workers
  python migrate.py --input DATA/store-manifest.txt --workflow upload --preview --publish --concurrency 8

  # Dry run (trace uploads without any request)
  python migrate.py --store /content/share/us/en/all-content-stores --dry

  # Verbose logging
  python migrate.py -vv
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration YAML file (default: config.yaml when present)'
    )

    parser.add_argument(
        '--workflow',
        choices=list(WORKFLOWS),
        default='full',
        help='Phases to run (default: full)'
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        '--input',
        type=str,
        help='Manifest file listing store paths, one per line'
    )
    source.add_argument(
        '--store',
        type=str,
        help='Single store path (default: source.default_store)'
    )

    parser.add_argument(
        '--fetch-store-links',
        action='store_true',
        help='Discovery mode: list the stores linked from --store and write a manifest'
    )

    parser.add_argument(
        '--manifest-out',
        type=str,
        help=f'Manifest written by discovery mode (default: <data dir>/{DEFAULT_MANIFEST_NAME})'
    )

    parser.add_argument(
        '--recursive',
        action='store_true',
        help='Follow content store links while extracting'
    )

    parser.add_argument(
        '--max-depth',
        type=int,
        help='Maximum link depth followed by --recursive'
    )

    parser.add_argument(
        '--refresh-cache',
        action='store_true',
        help='Ignore cached responses and fetch again'
    )

    parser.add_argument(
        '--preview',
        action='store_true',
        help='Preview uploaded documents'
    )

    parser.add_argument(
        '--publish',
        action='store_true',
        help='Publish uploaded documents'
    )

    parser.add_argument(
        '--reup',
        action='store_true',
        help='Upload even when the resource already exists'
    )

    parser.add_argument(
        '--dry',
        action='store_true',
        help='Trace uploads without making any request'
    )

    parser.add_argument(
        '--concurrency',
        type=int,
        help='Number of upload workers'
    )

    parser.add_argument(
        '--path',
        type=str,
        help='Data directory (default: ./DATA)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write logs to this file'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def resolve_config_path(args: argparse.Namespace):
    """Use --config, or config.yaml in the working directory when it exists."""
    if args.config:
        return args.config
    if Path('config.yaml').exists():
        return 'config.yaml'
    return None


def resolve_store_paths(config: dict, args: argparse.Namespace) -> List[str]:
    """
    Determine the batch of stores to process.

    Raises:
        FileNotFoundError: If the manifest does not exist
        ValueError: If the manifest lists no store
    """
    if args.input:
        paths = read_manifest(args.input)
        if not paths:
            raise ValueError(f"Manifest lists no store: {args.input}")
        return paths

    store = args.store or config['source']['default_store']
    return [normalize_store_path(store)]


def run_discovery(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """List the stores linked from one catalog and write them to a manifest."""
    if args.input:
        logger.error("--fetch-store-links takes a single --store, not a manifest")
        return 2

    store = normalize_store_path(args.store or config['source']['default_store'])
    manifest_out = args.manifest_out or str(Path(config['migration']['data_dir']) / DEFAULT_MANIFEST_NAME)

    orchestrator = MigrationOrchestrator(config, workflow='extract', logger=logger)
    paths = orchestrator.discover(store, manifest_out)

    print(f"\nDiscovered {len(paths)} stores from {store}:")
    for path in paths:
        print(f"  {path}")
    print(f"\nManifest written to {manifest_out}")
    return 0


def run_migration(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute the migration pipeline over the selected stores."""
    store_paths = resolve_store_paths(config, args)
    logger.info(f"Workflow: {args.workflow}, stores: {len(store_paths)}")

    orchestrator = MigrationOrchestrator(config, workflow=args.workflow, logger=logger)
    report = orchestrator.orchestrate_migration(store_paths)

    # Display report
    report_generator = MigrationReport(logger)
    console_report = report_generator.format_console_report(report)
    print("\n" + console_report)

    data_dir = Path(config['migration']['data_dir'])
    data_dir.mkdir(parents=True, exist_ok=True)
    report_generator.export_json_report(report, str(data_dir / REPORT_NAME))

    summary = report.get('summary', {})
    if summary.get('fatal_error'):
        logger.error(f"Migration aborted: {summary['fatal_error']}")
        return 1
    if summary.get('total_errors', 0) > 0:
        logger.warning(f"Migration completed with {summary['total_errors']} errors")
        return 1

    logger.info("Migration completed successfully")
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args()

    try:
        # Minimal logging for config loading
        setup_logging(verbosity=args.verbose, level='DEBUG' if args.debug else None)
        logger = logging.getLogger('content_store_migrator.cli')

        log_section("Content Store Migration Tool")
        logger.info(f"Version: {__version__}")

        config_path = resolve_config_path(args)
        logger.info(f"Loading configuration from {config_path or 'defaults'}")
        config = ConfigLoader.load(config_path)

        # CLI takes precedence over the config file
        config = ConfigLoader.merge_with_args(config, args)
        workflow = 'extract' if args.fetch_store_links else args.workflow
        ConfigLoader.validate(config, workflow)

        # Reconfigure logging with config file settings
        setup_logging(
            verbosity=args.verbose,
            log_file=config['logging'].get('file'),
            level=config['logging'].get('level')
        )
        log_config(config)

        if args.fetch_store_links:
            return run_discovery(config, args, logger)
        return run_migration(config, args, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except FetcherError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nMigration interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
