# src/twist_api/db/time.py
"""Time utilities for database models.

Timestamps are stored as integer epoch milliseconds so that comparisons do not
depend on the database's datetime handling.
"""

import time
from collections.abc import Callable

Clock = Callable[[], int]

MS_PER_SECOND = 1000
DAY_MS = 24 * 60 * 60 * MS_PER_SECOND


def now_ms() -> int:
    """Return the current UTC time in epoch milliseconds."""
    return int(time.time() * MS_PER_SECOND)
