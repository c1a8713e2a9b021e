"""hostguard: guarded, reversible configuration changes for remote hosts.

Every change to a live configuration file is snapshotted, validated by the
owning daemon's own checker and either committed or rolled back byte for byte.
"""
from __future__ import annotations

__all__ = ["__version__", "get_version"]

# Kept in step with ``pyproject.toml``.
__version__ = "0.1.0a0"


def get_version() -> str:
    """Return the installed hostguard version string."""
    return __version__
