"""Two-stage operator interlock in front of disruptive actions."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import ConfirmationRequired
from .models import ConfigurationResource, ConfirmationState, Decision

T = TypeVar("T")

AFFIRMATIVE = frozenset({"y", "yes"})


def normalize_answer(raw: str | None) -> bool:
    """Map a free-text reply to a boolean; anything but y/yes is a no."""
    if raw is None:
        return False
    return raw.strip().lower() in AFFIRMATIVE


@dataclass(slots=True)
class SessionContext:
    """Per-invocation operator state threaded through the gate."""

    resource: ConfigurationResource | None = None
    confirmation: ConfirmationState = field(default_factory=ConfirmationState)


@dataclass(slots=True)
class ConfirmationGate:
    """Ask whether the new access path was tested, then whether to act now.

    Declining the first question defers without asking the second. A
    ``PROCEED`` decision authorises exactly one call to :meth:`fire`.
    """

    prompt: Callable[[str], str]
    tested_question: str
    restart_question: str

    def await_confirmation(self, session: SessionContext) -> Decision:
        """Run the two questions and record the answers on *session*."""
        state = session.confirmation
        state.reset()

        state.operator_confirmed_tested = normalize_answer(self.prompt(self.tested_question))
        if not state.operator_confirmed_tested:
            return Decision.DEFER

        state.operator_authorized_restart = normalize_answer(self.prompt(self.restart_question))
        if not state.operator_authorized_restart:
            return Decision.DEFER
        return Decision.PROCEED

    def fire(self, session: SessionContext, action: Callable[[], T]) -> T:
        """Invoke *action* once if both confirmations are on record."""
        state = session.confirmation
        if not state.satisfied:
            raise ConfirmationRequired(
                "Disruptive action requires tested-access and restart confirmations."
            )
        state.reset()
        return action()


__all__ = ["AFFIRMATIVE", "ConfirmationGate", "SessionContext", "normalize_answer"]
