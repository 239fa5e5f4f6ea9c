"""Module entry point allowing ``python -m telegram_reminder_bot``."""
from __future__ import annotations

import sys

from .core.main import main


if __name__ == "__main__":
    sys.exit(main())
