"""Allow running as ``python -m indexmigrate``."""

import sys

from indexmigrate.cli import main

sys.exit(main())
