"""Tests for the two-stage confirmation gate."""
from __future__ import annotations

from collections.abc import Iterable

import pytest

from hostguard.errors import ConfirmationRequired
from hostguard.gate import ConfirmationGate, SessionContext, normalize_answer
from hostguard.models import Decision

TESTED = "Have you successfully tested SSH login with alice? (y/n)"
RESTART = "Do you want to restart SSH service now? (y/n)"


class ScriptedPrompt:
    """Answer questions from a script and remember what was asked."""

    def __init__(self, answers: Iterable[str]) -> None:
        """Store the scripted answers."""
        self.answers = list(answers)
        self.asked: list[str] = []

    def __call__(self, question: str) -> str:
        self.asked.append(question)
        return self.answers.pop(0)


class ActionSpy:
    """Disruptive action stand-in counting invocations."""

    def __init__(self) -> None:
        """Start with zero calls."""
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return "ssh"


def _gate(prompt: ScriptedPrompt) -> ConfirmationGate:
    return ConfirmationGate(prompt=prompt, tested_question=TESTED, restart_question=RESTART)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("y", True), ("YES", True), (" Yes ", True), ("n", False), ("", False), ("yep", False)],
)
def test_normalize_answer(raw: str, expected: bool) -> None:
    """Only y/yes in any case counts as an affirmative."""
    assert normalize_answer(raw) is expected


def test_decline_tested_defers_without_asking_restart() -> None:
    """A no to the first question short-circuits the second."""
    prompt = ScriptedPrompt(["n"])
    spy = ActionSpy()
    session = SessionContext()
    gate = _gate(prompt)

    decision = gate.await_confirmation(session)

    assert decision is Decision.DEFER
    assert prompt.asked == [TESTED]
    with pytest.raises(ConfirmationRequired):
        gate.fire(session, spy)
    assert spy.calls == 0


def test_decline_restart_defers() -> None:
    """Declining the restart leaves the action uninvoked."""
    prompt = ScriptedPrompt(["yes", "no"])
    spy = ActionSpy()
    session = SessionContext()
    gate = _gate(prompt)

    assert gate.await_confirmation(session) is Decision.DEFER
    assert prompt.asked == [TESTED, RESTART]
    assert session.confirmation.operator_confirmed_tested is True
    assert session.confirmation.operator_authorized_restart is False
    with pytest.raises(ConfirmationRequired):
        gate.fire(session, spy)
    assert spy.calls == 0


def test_proceed_authorises_exactly_one_action() -> None:
    """PROCEED is single use."""
    prompt = ScriptedPrompt(["Y", "y"])
    spy = ActionSpy()
    session = SessionContext()
    gate = _gate(prompt)

    assert gate.await_confirmation(session) is Decision.PROCEED
    assert gate.fire(session, spy) == "ssh"
    with pytest.raises(ConfirmationRequired):
        gate.fire(session, spy)
    assert spy.calls == 1
    assert session.confirmation.satisfied is False


def test_new_round_resets_previous_answers() -> None:
    """Stale confirmations never carry over into a new round."""
    session = SessionContext()
    session.confirmation.operator_confirmed_tested = True
    session.confirmation.operator_authorized_restart = True

    decision = _gate(ScriptedPrompt(["n"])).await_confirmation(session)

    assert decision is Decision.DEFER
    assert session.confirmation.satisfied is False
