"""Allow `python -m testlog_ingest`."""

import sys

from .cli import main

sys.exit(main())
