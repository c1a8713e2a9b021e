"""Grammar checks for operator-supplied identifiers and ports."""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from .errors import InputInvalid

IDENTIFIER_PATTERN = re.compile(r"[a-z_][a-z0-9_-]*")
PORT_PATTERN = re.compile(r"[0-9]+")
PORT_MIN = 1
PORT_MAX = 65535

BatchPolicy = Literal["skip", "reject"]
BATCH_POLICIES: tuple[BatchPolicy, ...] = ("skip", "reject")


def validate_identifier(value: str) -> bool:
    """Return ``True`` when *value* is a safe account identifier."""
    return IDENTIFIER_PATTERN.fullmatch(value) is not None


def validate_port(value: str) -> bool:
    """Return ``True`` when *value* is a decimal port between 1 and 65535."""
    if PORT_PATTERN.fullmatch(value) is None:
        return False
    # Bound the digit count before calling int().
    if len(value.lstrip("0")) > len(str(PORT_MAX)):
        return False
    return PORT_MIN <= int(value) <= PORT_MAX


def require_identifier(value: str) -> str:
    """Return *value* or raise :class:`InputInvalid`."""
    if not validate_identifier(value):
        raise InputInvalid(
            f"Invalid identifier {value!r}. Use only lowercase letters, numbers, "
            "underscore, and hyphen. Must start with a letter or underscore.",
            invalid=(value,),
        )
    return value


def require_port(value: str) -> int:
    """Return *value* as an integer or raise :class:`InputInvalid`."""
    if not validate_port(value):
        raise InputInvalid(
            f"Invalid port number {value!r}. Expected an integer between "
            f"{PORT_MIN} and {PORT_MAX}.",
            invalid=(value,),
        )
    return int(value)


@dataclass(slots=True)
class PortBatch:
    """Ports accepted from a comma-separated batch plus the skipped items."""

    ports: list[int] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def parse_port_batch(raw: str | Sequence[str], policy: BatchPolicy = "skip") -> PortBatch:
    """Parse a comma-separated list of ports according to *policy*.

    ``skip`` keeps the valid entries and records the invalid ones; ``reject``
    raises :class:`InputInvalid` naming every invalid entry. Empty items are
    ignored and duplicates keep their first position.
    """
    if policy not in BATCH_POLICIES:
        raise ValueError(f"Unsupported batch policy '{policy}'.")
    items = raw.split(",") if isinstance(raw, str) else list(raw)

    batch = PortBatch()
    for item in items:
        candidate = item.strip()
        if not candidate:
            continue
        if not validate_port(candidate):
            batch.skipped.append(candidate)
            continue
        port = int(candidate)
        if port not in batch.ports:
            batch.ports.append(port)

    if batch.skipped and policy == "reject":
        joined = ", ".join(batch.skipped)
        raise InputInvalid(
            f"Invalid port numbers: {joined}. No ports were accepted.",
            invalid=tuple(batch.skipped),
        )
    return batch


__all__ = [
    "BATCH_POLICIES",
    "BatchPolicy",
    "PortBatch",
    "parse_port_batch",
    "require_identifier",
    "require_port",
    "validate_identifier",
    "validate_port",
]
