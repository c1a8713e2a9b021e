"""Process exit codes shared by every hostguard command."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit status reported for each class of failure."""

    OK = 0
    INVALID_INPUT = 2  # rejected before any file was touched
    ENVIRONMENT = 3  # missing file, failed backup or bad configuration
    REJECTED = 4  # validator refused the change or the side effect failed
