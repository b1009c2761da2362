#!/usr/bin/env python3
"""
Catalog Taxonomy Admin - Main Entry Point

Starts the desktop console for managing the category tree.
"""

import sys
import logging

try:
    from catalog_modules.config import SCRIPT_VERSION
    from catalog_modules.gui import build_gui
except ImportError as e:
    print(f"Error importing catalog_modules: {e}")
    print("Make sure the catalog_modules package is in the same directory as this script.")
    sys.exit(1)

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
