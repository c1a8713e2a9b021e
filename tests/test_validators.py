"""Tests for operator input validation."""
from __future__ import annotations

import pytest

from hostguard.errors import InputInvalid
from hostguard.exit_codes import ExitCode
from hostguard.validators import (
    parse_port_batch,
    require_identifier,
    require_port,
    validate_identifier,
    validate_port,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("0", False),
        ("65536", False),
        ("22", True),
        ("22a", False),
        ("1", True),
        ("65535", True),
        ("", False),
        (" 22", False),
        ("-1", False),
        ("00022", True),
        ("000065536", False),
        ("1" * 5000, False),
        ("0" * 5000 + "22", True),
    ],
)
def test_validate_port(value: str, expected: bool) -> None:
    """Ports must be decimal digits within 1..65535."""
    assert validate_port(value) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Bob", False),
        ("_svc-1", True),
        ("1bob", False),
        ("alice", True),
        ("", False),
        ("bob smith", False),
        ("bob;rm", False),
    ],
)
def test_validate_identifier(value: str, expected: bool) -> None:
    """Identifiers start with a lowercase letter or underscore."""
    assert validate_identifier(value) is expected


def test_require_helpers_raise_input_invalid() -> None:
    """Strict helpers raise ``InputInvalid`` carrying the rejected value."""
    assert require_port("2222") == 2222
    assert require_identifier("deploy") == "deploy"

    with pytest.raises(InputInvalid) as excinfo:
        require_port("70000")
    assert excinfo.value.invalid == ("70000",)
    assert excinfo.value.exit_code is ExitCode.INVALID_INPUT

    with pytest.raises(InputInvalid, match="Invalid identifier"):
        require_identifier("Root")


def test_port_batch_skip_policy_keeps_valid_entries() -> None:
    """Invalid items are reported and valid ones kept in order, deduplicated."""
    batch = parse_port_batch(" 80, 443,abc,,80, 0 ,8080")

    assert batch.ports == [80, 443, 8080]
    assert batch.skipped == ["abc", "0"]


def test_port_batch_reject_policy_names_every_invalid_item() -> None:
    """The reject policy refuses the whole batch."""
    with pytest.raises(InputInvalid) as excinfo:
        parse_port_batch("80,abc,99999", policy="reject")

    assert excinfo.value.invalid == ("abc", "99999")
    assert "abc" in str(excinfo.value)
    assert "99999" in str(excinfo.value)


def test_port_batch_accepts_sequences_and_empty_input() -> None:
    """Pre-split input and blank strings are both supported."""
    assert parse_port_batch(["22", "443"]).ports == [22, 443]
    empty = parse_port_batch("")
    assert empty.ports == []
    assert empty.skipped == []


def test_port_batch_rejects_unknown_policy() -> None:
    """Unknown policies are programming errors."""
    with pytest.raises(ValueError):
        parse_port_batch("22", policy="maybe")  # type: ignore[arg-type]
