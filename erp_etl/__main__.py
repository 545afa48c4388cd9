"""Run the ETL with ``python -m erp_etl``."""

import sys

from erp_etl.main import main

sys.exit(main())
