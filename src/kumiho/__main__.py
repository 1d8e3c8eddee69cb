"""Entry point for ``python -m kumiho``."""

import sys

from kumiho.cli import main

sys.exit(main())
