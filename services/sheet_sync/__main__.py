"""
Entry point for running the sheet sync service as a module.

Usage:
    python -m services.sheet_sync [args]
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
