"""Data models for guarded configuration mutations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal


class UpsertPolicy(str, Enum):
    """How a directive is merged into existing configuration text."""

    REPLACE_OR_APPEND = "replace-or-append"
    APPEND_IF_ABSENT = "append-if-absent"


@dataclass(slots=True, frozen=True)
class DirectiveRule:
    """Single idempotent mutation intent for a directive key."""

    key: str
    value: str = ""
    policy: UpsertPolicy = UpsertPolicy.REPLACE_OR_APPEND
    verify_if_present: bool = False

    def __post_init__(self) -> None:
        """Reject keys that cannot be matched against a line."""
        if not self.key.split():
            raise ValueError("Directive key must contain at least one token.")

    @property
    def tokens(self) -> tuple[str, ...]:
        """Return the whitespace-separated tokens making up the key."""
        return tuple(self.key.split())

    def render(self) -> str:
        """Return the configuration line this rule produces."""
        key = " ".join(self.tokens)
        value = self.value.strip()
        return f"{key} {value}" if value else key

    @classmethod
    def replace(cls, key: str, value: str = "") -> DirectiveRule:
        """Shorthand for a REPLACE_OR_APPEND rule."""
        return cls(key=key, value=value, policy=UpsertPolicy.REPLACE_OR_APPEND)

    @classmethod
    def append_if_absent(
        cls, key: str, value: str = "", *, verify_if_present: bool = False
    ) -> DirectiveRule:
        """Shorthand for an APPEND_IF_ABSENT rule.

        With *verify_if_present* an existing directive is reported so the
        operator can check it by hand.
        """
        return cls(
            key=key,
            value=value,
            policy=UpsertPolicy.APPEND_IF_ABSENT,
            verify_if_present=verify_if_present,
        )


ChangeKind = Literal["replaced", "appended", "unchanged", "present"]


@dataclass(slots=True, frozen=True)
class DirectiveChange:
    """What applying one rule did to the content."""

    rule: DirectiveRule
    kind: ChangeKind
    lines: tuple[int, ...] = ()


@dataclass(slots=True, frozen=True)
class MutationResult:
    """Content produced by the mutator plus per-rule change records."""

    content: str
    changes: tuple[DirectiveChange, ...] = ()

    @property
    def changed(self) -> bool:
        """Return ``True`` when at least one rule modified the content."""
        return any(change.kind in {"replaced", "appended"} for change in self.changes)


class CapabilityStatus(str, Enum):
    """Tri-state result of probing for an external binary."""

    PRESENT = "present"
    ABSENT = "absent"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Capability:
    """Outcome of detecting an external tool."""

    status: CapabilityStatus
    path: str | None = None
    detail: str | None = None


class ValidationStatus(str, Enum):
    """High-level outcome of an external syntax check."""

    PASS = "pass"
    FAIL = "fail"
    UNAVAILABLE = "unavailable"


@dataclass(slots=True, frozen=True)
class ValidationOutcome:
    """Result of validating candidate content without applying it."""

    status: ValidationStatus
    diagnostic: str = ""

    @classmethod
    def passed(cls, diagnostic: str = "") -> ValidationOutcome:
        """Return a PASS outcome."""
        return cls(ValidationStatus.PASS, diagnostic)

    @classmethod
    def failed(cls, diagnostic: str) -> ValidationOutcome:
        """Return a FAIL outcome carrying *diagnostic*."""
        return cls(ValidationStatus.FAIL, diagnostic)

    @classmethod
    def unavailable(cls, diagnostic: str) -> ValidationOutcome:
        """Return an UNAVAILABLE outcome (checker missing)."""
        return cls(ValidationStatus.UNAVAILABLE, diagnostic)


@dataclass(slots=True, frozen=True)
class ConfigurationResource:
    """A named, line-oriented configuration file guarded by a backup slot."""

    name: str
    path: Path

    @property
    def backup_path(self) -> Path:
        """Return the well-known backup location for the resource."""
        return self.path.with_name(f"{self.path.name}.backup")


@dataclass(slots=True)
class BackupHandle:
    """Captured snapshot of a resource, restorable at most once."""

    resource: ConfigurationResource
    path: Path
    content: bytes
    mode: int | None = None
    restored: bool = False
    released: bool = False


class CycleState(str, Enum):
    """Lifecycle states of a mutation cycle."""

    CREATED = "created"
    SNAPSHOTTED = "snapshotted"
    MUTATED = "mutated"
    VALIDATED = "validated"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled-back"


_TRANSITIONS: dict[CycleState, frozenset[CycleState]] = {
    CycleState.CREATED: frozenset({CycleState.SNAPSHOTTED}),
    CycleState.SNAPSHOTTED: frozenset({CycleState.MUTATED}),
    CycleState.MUTATED: frozenset({CycleState.VALIDATED}),
    CycleState.VALIDATED: frozenset({CycleState.COMMITTED, CycleState.ROLLED_BACK}),
    CycleState.COMMITTED: frozenset(),
    CycleState.ROLLED_BACK: frozenset(),
}


@dataclass(slots=True)
class MutationCycle:
    """Single-use workflow binding a resource, its rules and the validation outcome."""

    resource: ConfigurationResource
    rules: tuple[DirectiveRule, ...]
    state: CycleState = CycleState.CREATED
    backup: BackupHandle | None = None
    original: str | None = None
    candidate: str | None = None
    changes: tuple[DirectiveChange, ...] = ()
    outcome: ValidationOutcome | None = None
    warnings: list[str] = field(default_factory=list)
    history: list[CycleState] = field(default_factory=lambda: [CycleState.CREATED])

    def advance(self, target: CycleState) -> None:
        """Move to *target*, refusing transitions outside the lifecycle."""
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal mutation cycle transition {self.state.value} -> {target.value}."
            )
        self.state = target
        self.history.append(target)

    @property
    def committed(self) -> bool:
        """Return ``True`` when the cycle committed."""
        return self.state is CycleState.COMMITTED

    @property
    def rolled_back(self) -> bool:
        """Return ``True`` when the cycle was reverted."""
        return self.state is CycleState.ROLLED_BACK


class Decision(str, Enum):
    """Terminal outcome of the confirmation gate."""

    PROCEED = "proceed"
    DEFER = "defer"


@dataclass(slots=True)
class ConfirmationState:
    """Operator answers for the current disruptive action."""

    operator_confirmed_tested: bool = False
    operator_authorized_restart: bool = False

    @property
    def satisfied(self) -> bool:
        """Return ``True`` when both confirmations were given."""
        return self.operator_confirmed_tested and self.operator_authorized_restart

    def reset(self) -> None:
        """Clear both answers."""
        self.operator_confirmed_tested = False
        self.operator_authorized_restart = False


__all__ = [
    "BackupHandle",
    "Capability",
    "CapabilityStatus",
    "ChangeKind",
    "ConfigurationResource",
    "ConfirmationState",
    "CycleState",
    "Decision",
    "DirectiveChange",
    "DirectiveRule",
    "MutationCycle",
    "MutationResult",
    "UpsertPolicy",
    "ValidationOutcome",
    "ValidationStatus",
]
