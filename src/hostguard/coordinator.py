"""Snapshot → mutate → validate → commit-or-rollback for one resource.

The coordinator never mutates a resource it could not snapshot, and never
reports a validation failure before the live file has been restored to its
exact pre-cycle bytes. Failed validations are never retried.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from .directives import mutate
from .errors import ResourceUnavailable, ValidationFailed
from .models import (
    BackupHandle,
    ConfigurationResource,
    CycleState,
    DirectiveRule,
    MutationCycle,
    ValidationOutcome,
    ValidationStatus,
)
from .store import ConfigStore

LOGGER = logging.getLogger(__name__)


class ExternalValidator(Protocol):
    """Service-specific syntax checker for candidate content."""

    def check(self, candidate: str) -> ValidationOutcome:
        """Return the outcome of validating *candidate* without applying it."""


@dataclass(slots=True)
class GuardedMutationCoordinator:
    """Drive one guarded mutation cycle against a configuration resource."""

    store: ConfigStore
    validator: ExternalValidator
    allow_unavailable: bool = True

    def run(
        self,
        resource: ConfigurationResource,
        rules: Iterable[DirectiveRule],
    ) -> MutationCycle:
        """Run a full cycle and return it in COMMITTED or ROLLED_BACK state.

        ``BackupFailed`` and ``ResourceUnavailable`` propagate before any
        mutation takes place. A validator that raises counts as a FAIL.
        ``RollbackFailed`` propagates when the snapshot cannot be put back;
        the cycle then stays pending in the store.
        """
        cycle = MutationCycle(resource=resource, rules=tuple(rules))

        handle = self.store.snapshot(resource)
        cycle.backup = handle
        cycle.advance(CycleState.SNAPSHOTTED)
        LOGGER.debug("Snapshot of %s written to %s", resource.path, handle.path)

        try:
            original = self.store.read(resource)
            result = mutate(original, cycle.rules)
            self.store.write(resource, result.content)
        except ResourceUnavailable:
            self.store.restore(handle)
            raise
        cycle.original = original
        cycle.candidate = result.content
        cycle.changes = result.changes
        for change in result.changes:
            if change.kind == "present" and change.rule.verify_if_present:
                cycle.warnings.append(
                    f"{change.rule.key} already configured in {resource.path}; "
                    "left unchanged, please verify manually."
                )
        cycle.advance(CycleState.MUTATED)

        try:
            outcome = self.validator.check(result.content)
        except Exception as exc:
            LOGGER.exception("Validator raised while checking %s", resource.path)
            outcome = ValidationOutcome.failed(f"Validator error: {exc}")
        except BaseException:
            self.store.restore(handle)
            raise
        cycle.outcome = outcome
        cycle.advance(CycleState.VALIDATED)

        if outcome.status is ValidationStatus.PASS:
            return self._commit(cycle, handle)
        if outcome.status is ValidationStatus.UNAVAILABLE and self.allow_unavailable:
            cycle.warnings.append(outcome.diagnostic or "Validator unavailable; check skipped.")
            return self._commit(cycle, handle)
        return self._rollback(cycle, handle)

    # ------------------------------------------------------------------
    def _commit(self, cycle: MutationCycle, handle: BackupHandle) -> MutationCycle:
        self.store.release(handle)
        cycle.advance(CycleState.COMMITTED)
        LOGGER.info("Committed %s (%d rules)", cycle.resource.path, len(cycle.rules))
        return cycle

    def _rollback(self, cycle: MutationCycle, handle: BackupHandle) -> MutationCycle:
        self.store.restore(handle)
        cycle.advance(CycleState.ROLLED_BACK)
        LOGGER.warning(
            "Rolled back %s: %s",
            cycle.resource.path,
            cycle.outcome.diagnostic if cycle.outcome else "validation failed",
        )
        return cycle


def require_commit(cycle: MutationCycle) -> MutationCycle:
    """Return *cycle* when committed, else raise :class:`ValidationFailed`."""
    if cycle.committed:
        return cycle
    outcome = cycle.outcome
    diagnostic = outcome.diagnostic if outcome and outcome.diagnostic else "validation failed"
    if outcome is not None and outcome.status is ValidationStatus.UNAVAILABLE:
        diagnostic = f"validator unavailable and unavailable checks are not allowed: {diagnostic}"
    raise ValidationFailed(
        f"{cycle.resource.name} configuration rejected; restored {cycle.resource.path} "
        f"from backup. {diagnostic}",
        cycle=cycle,
    )


__all__ = ["ExternalValidator", "GuardedMutationCoordinator", "require_commit"]
