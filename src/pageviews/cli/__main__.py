"""Entry point for ``python -m pageviews.cli``."""

import sys

from .main import main

if __name__ == "__main__":  # pragma: no cover - executable module
    sys.exit(main())
