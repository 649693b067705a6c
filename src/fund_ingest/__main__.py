import sys

from fund_ingest.cli import main

sys.exit(main())
