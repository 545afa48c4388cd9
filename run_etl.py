#!/usr/bin/env python
"""
ETL Entry Point

Runs one full ERP to warehouse load.
Usage:
    Against the ERP:   python run_etl.py
    Dry run:           python run_etl.py --mock --create-schema
    Scheduled jobs:    python run_etl.py --strict

Or after installation:
    erp-etl --mock
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from erp_etl.main import main


if __name__ == "__main__":
    sys.exit(main())
