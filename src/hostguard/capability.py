"""Detection of external tools consumed by validators and service control."""
from __future__ import annotations

import os
import shutil
from collections.abc import Sequence

from .models import Capability, CapabilityStatus


def detect_binary(candidates: Sequence[str]) -> Capability:
    """Return the first usable binary among *candidates*.

    A candidate that resolves to a path which exists but cannot be executed
    yields ``ERROR``; no resolvable candidate at all yields ``ABSENT``.
    """
    errors: list[str] = []
    for candidate in candidates:
        try:
            resolved = shutil.which(candidate)
        except OSError as exc:
            errors.append(f"{candidate}: {exc}")
            continue
        if resolved is not None:
            return Capability(CapabilityStatus.PRESENT, path=resolved)
        if os.path.sep in candidate and os.path.exists(candidate):
            errors.append(f"{candidate}: exists but is not executable")
    if errors:
        return Capability(CapabilityStatus.ERROR, detail="; ".join(errors))
    joined = ", ".join(candidates)
    return Capability(CapabilityStatus.ABSENT, detail=f"none of {joined} found")


__all__ = ["detect_binary"]
