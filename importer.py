#!/usr/bin/env python3
"""
Vendure Catalog Importer - Main Entry Point

Desktop front end for importing scraped catalogs into Vendure.
For the command-line interface, use main.py instead.
"""

import sys
import logging

# Import the GUI module and version
try:
    from importer_modules.config import SCRIPT_VERSION
    from importer_modules.gui import build_gui
except ImportError as e:
    print(f"Error importing importer_modules: {e}")
    print("Make sure the importer_modules package is in the same directory as this script.")
    sys.exit(1)

# Print version info
print(f"Starting {SCRIPT_VERSION}")


def main():
    """Main entry point for the application."""
    try:
        build_gui()
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logging.exception("Fatal error in main:")
        sys.exit(1)


if __name__ == "__main__":
    main()
