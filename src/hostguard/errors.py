"""Error taxonomy shared by the guarded mutation workflow."""
from __future__ import annotations

from typing import TYPE_CHECKING

from .exit_codes import ExitCode

if TYPE_CHECKING:
    from pathlib import Path

    from .models import MutationCycle


class HostGuardError(RuntimeError):
    """Base class for failures surfaced to the operator."""

    exit_code: ExitCode = ExitCode.REJECTED


class InputInvalid(HostGuardError):
    """Raised when operator-supplied input fails its grammar."""

    exit_code = ExitCode.INVALID_INPUT

    def __init__(self, message: str, *, invalid: tuple[str, ...] = ()) -> None:
        """Store the rejected values alongside the message."""
        super().__init__(message)
        self.invalid = invalid


class ResourceUnavailable(HostGuardError):
    """Raised when a configuration resource cannot be read or written."""

    exit_code = ExitCode.ENVIRONMENT


class BackupFailed(HostGuardError):
    """Raised when a recoverable snapshot cannot be made durable."""

    exit_code = ExitCode.ENVIRONMENT


class RollbackFailed(ResourceUnavailable):
    """Raised when a snapshot could not be written back over the live file.

    The backup slot is left untouched; ``backup_path`` names it so the
    operator can restore by hand.
    """

    def __init__(self, message: str, *, backup_path: Path) -> None:
        """Record where the intact backup lives."""
        super().__init__(message)
        self.backup_path = backup_path


class ValidationFailed(HostGuardError):
    """Raised after a candidate failed validation and was rolled back."""

    exit_code = ExitCode.REJECTED

    def __init__(self, message: str, *, cycle: MutationCycle) -> None:
        """Attach the rolled-back cycle for reporting."""
        super().__init__(message)
        self.cycle = cycle


class ExternalActionFailed(HostGuardError):
    """Raised when a disruptive action (restart, enable) fails."""

    exit_code = ExitCode.REJECTED

    def __init__(self, message: str, *, attempts: tuple[str, ...] = ()) -> None:
        """Record the commands that were attempted."""
        super().__init__(message)
        self.attempts = attempts


class ConfirmationRequired(HostGuardError):
    """Raised when a disruptive action is fired without operator consent."""

    exit_code = ExitCode.INVALID_INPUT


__all__ = [
    "BackupFailed",
    "ConfirmationRequired",
    "ExternalActionFailed",
    "HostGuardError",
    "InputInvalid",
    "ResourceUnavailable",
    "RollbackFailed",
    "ValidationFailed",
]
