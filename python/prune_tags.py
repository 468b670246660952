#!/usr/bin/env python3
"""
Delete image tags from a Docker registry according to cleanup rules.

For every repository listed in the config file, the script lists the live
tags, selects those matched by a 'cleanup' rule and no 'except' rule,
resolves each selected tag to its manifest digest and deletes the manifest.
Tags whose lookup or deletion fails are skipped and listed at the end.

Rules look like "<operator>:<argument>":
  regexp:^pr-        tags containing a match of the regular expression
  date:<-30          tags named YYYYMMDD older than 30 days ago
  equal:latest       exactly the tag "latest"

Usage examples:
  # Show what would be deleted
  python prune_tags.py -c cleanup.yml --dry-run

  # Delete, and keep a JSON report of the run
  python prune_tags.py -c cleanup.yml --output reports/prune.json

  # Config path from the environment (takes precedence over -c)
  REGISTRY_CLEANUP_CONFIG=/etc/registry/cleanup.yml python prune_tags.py

Exit status:
  0  all selected tags were processed
  1  fatal error (config, registry connectivity, tag listing, malformed rule)
  3  run completed but some tags were skipped

Note: deleting manifests does not free storage by itself; run the registry's
garbage collector afterwards.
"""

import argparse
import logging
import sys
from typing import List, Optional

from registry_pruner.config_manager import (
    DEFAULT_CONFIG_FILE,
    ConfigManager,
    ConfigValidationError,
    resolve_config_path,
)
from registry_pruner.error_utils import ActionableError, create_config_error, create_pattern_error
from registry_pruner.logging_utils import get_logger, log_exception, setup_logging
from registry_pruner.orchestrator import TagPruner
from registry_pruner.pattern_matcher import PatternParseError
from registry_pruner.registry_client import RegistryClient
from registry_pruner.report_utils import save_json

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_SKIPPED = 3

logger = get_logger("prune_tags")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Delete Docker registry tags selected by cleanup rules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help=f"Config file name and path (default: {DEFAULT_CONFIG_FILE}; "
             "REGISTRY_CLEANUP_CONFIG overrides it)",
    )
    parser.add_argument(
        "-n", "--dry-run",
        action="store_true",
        help="Dry run: resolve and report selected tags, do not actually delete",
    )
    parser.add_argument(
        "-o", "--output",
        help="Write a JSON report of the run to this path",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    args = parse_arguments(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config_manager = ConfigManager(args.config)
    except ConfigValidationError as e:
        logger.error(str(create_config_error(resolve_config_path(args.config), str(e))))
        return EXIT_FATAL

    config_manager.print_config()
    config = config_manager.get_prune_config()

    logger.info("=" * 60)
    logger.info("   DRY RUN: finding tags to prune" if args.dry_run else "   Pruning registry tags")
    logger.info("=" * 60)

    client = RegistryClient(config.registry_url)
    if config.auth is not None:
        client.set_basic_auth(config.auth.username, config.auth.password)

    try:
        report = TagPruner(client, config, dry_run=args.dry_run).run()
    except PatternParseError as e:
        logger.error(f"exited due to error while filtering tags\n{create_pattern_error(e)}")
        return EXIT_FATAL
    except ActionableError as e:
        logger.error(str(e))
        return EXIT_FATAL
    except Exception as e:
        log_exception(logger, "Unexpected error during pruning", e)
        return EXIT_FATAL
    finally:
        client.close()

    if args.output:
        save_json(args.output, report.to_dict())

    if report.has_skipped:
        return EXIT_SKIPPED
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
