"""Allow ``python -m keyscout``."""

import sys

from keyscout.cli import main

sys.exit(main())
