#!/usr/bin/env python
"""
Bulk Import Orchestrator Script
Run one bulk import of files into a database table

Usage:
    python scripts/run_bulk_import.py
    python scripts/run_bulk_import.py --config config/bulk_import.yml --dry-run
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bulkload.cli import main


if __name__ == "__main__":
    sys.exit(main())
