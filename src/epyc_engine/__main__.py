"""Allow ``python -m epyc_engine``."""

import sys

from .cli import main

sys.exit(main())
