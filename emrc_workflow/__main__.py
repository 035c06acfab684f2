"""Allow ``python -m emrc_workflow``."""

import sys

from emrc_workflow.cli import main

sys.exit(main())
