"""Allow `python -m repair_planner`."""

import sys

from repair_planner.cli import main

sys.exit(main())
