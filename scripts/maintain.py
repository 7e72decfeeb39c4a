#!/usr/bin/env python3
"""
Run a database maintenance task.

Usage:
    python scripts/maintain.py check-collections
    python scripts/maintain.py fix-duplicate-emails --dry-run
    python scripts/maintain.py --help

Requires:
    - .env file with MONGODB_URL and DB_NAME (or the environment)
"""

import sys
from pathlib import Path

# Add the project root to path so the package imports without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from astroadmin.maintenance.cli import main  # noqa: E402

if __name__ == '__main__':
    sys.exit(main())
