#!/usr/bin/env python3
"""
Vendure Catalog Importer - CLI Entry Point

Imports scraped WooCommerce catalogs (CSV, XLSX or JSON) into Vendure
through the GraphQL Admin API.
For GUI interface, use importer.py instead.
"""

import argparse
import sys
import os
import logging

# Add current directory to path for imports
sys.path.insert(0, os.path.dirname(__file__))

from importer_modules.config import load_config, SCRIPT_VERSION
from importer_modules.product_processing import (
    process_products, ImportSetupError, EXECUTION_MODES
)
from importer_modules.sources import InputFileError


def print_status(message: str) -> None:
    """Status callback for CLI mode - prints to stdout."""
    print(message)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Vendure Catalog Importer - Import products into Vendure via the Admin API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --input productos.xlsx --output results.json
  %(prog)s --input products.csv --mode overwrite --reindex
  %(prog)s --input scraped.json --collections-output collections.json --verbose

Connection settings come from config.json, a .env file or the environment
(ADMIN_API, ADMIN_USER, ADMIN_PASS, VENDURE_CHANNEL, CSV_PATH/XLSX_PATH, ...).
        """
    )

    parser.add_argument(
        "--input", "-i",
        help="Path to input file (.csv, .xlsx or .json); defaults to INPUT_FILE / CSV_PATH / XLSX_PATH"
    )
    parser.add_argument(
        "--output", "-o",
        help="Path to output JSON file for per-row results"
    )
    parser.add_argument(
        "--collections-output", "-c",
        help="Path to collections report JSON file"
    )
    parser.add_argument(
        "--log", "-l",
        help="Path to log file (optional)"
    )
    parser.add_argument(
        "--mode", "-m",
        choices=list(EXECUTION_MODES),
        help="Execution mode: 'resume' skips products imported earlier, "
             "'overwrite' deletes and recreates them, 'fresh' ignores the restore point "
             "(default: EXECUTION_MODE from config, else resume)"
    )
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Rebuild the search index after the import"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {SCRIPT_VERSION}"
    )
    return parser


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    print(f"Starting {SCRIPT_VERSION}")
    print("=" * 60)

    # Load configuration (config.json, .env, environment)
    cfg = load_config()

    # Update config with CLI arguments
    if args.input:
        cfg["INPUT_FILE"] = args.input
    if args.output:
        cfg["PRODUCT_OUTPUT_FILE"] = args.output
    if args.collections_output:
        cfg["COLLECTIONS_OUTPUT_FILE"] = args.collections_output
    if args.log:
        cfg["LOG_FILE"] = args.log
    if args.reindex:
        cfg["REINDEX_AFTER_IMPORT"] = True

    mode = args.mode or str(cfg.get("EXECUTION_MODE", "resume")).strip().lower() or "resume"
    if mode not in EXECUTION_MODES:
        print(f"Error: Unknown execution mode '{mode}'", file=sys.stderr)
        return 1
    cfg["EXECUTION_MODE"] = mode

    input_file = str(cfg.get("INPUT_FILE", "")).strip()
    if not input_file:
        print("Error: No input file given (--input, INPUT_FILE, CSV_PATH or XLSX_PATH)", file=sys.stderr)
        return 1
    if not os.path.exists(input_file):
        print(f"Error: Input file does not exist: {input_file}", file=sys.stderr)
        return 1

    if not str(cfg.get("ADMIN_API", "")).strip():
        print("Error: ADMIN_API not configured in config.json or environment", file=sys.stderr)
        return 1

    print(f"Input file: {input_file}")
    print(f"Output file: {cfg.get('PRODUCT_OUTPUT_FILE') or '(none)'}")
    print(f"Collections file: {cfg.get('COLLECTIONS_OUTPUT_FILE') or '(none)'}")
    print(f"Execution mode: {mode}")
    print("=" * 60)

    try:
        counters = process_products(
            cfg, print_status, execution_mode=mode,
            log_level=logging.DEBUG if args.verbose else logging.INFO
        )
        print("=" * 60)
        print(f"Import finished: {counters.created} created, {counters.failed} failed, {counters.skipped} skipped")
        return 0
    except KeyboardInterrupt:
        print("\nProcessing interrupted by user.", file=sys.stderr)
        return 130
    except (ImportSetupError, InputFileError) as e:
        logging.error(f"Fatal setup error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logging.exception("Fatal error during processing:")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
