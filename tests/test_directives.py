"""Tests for the pure directive mutator."""
from __future__ import annotations

import pytest

from hostguard.directives import (
    apply_directives,
    find_directive,
    line_tokens,
    matches,
    mutate,
    split_lines,
)
from hostguard.models import DirectiveRule

SSHD_SAMPLE = (
    "# Sample sshd_config\n"
    "Port 2222\n"
    "#PermitRootLogin prohibit-password\n"
    "PasswordAuthentication yes\n"
    "# PasswordAuthentication is discussed in the manual\n"
    "X11Forwarding yes\n"
    "PermitRootLoginExtra whatever\n"
    "Subsystem sftp /usr/lib/openssh/sftp-server\n"
)


def test_commented_directive_is_replaced() -> None:
    """A disabled directive is rewritten live with the new value."""
    rule = DirectiveRule.replace("PermitRootLogin", "no")

    assert apply_directives("#PermitRootLogin yes\n", [rule]) == "PermitRootLogin no\n"


def test_append_if_absent_is_not_duplicated() -> None:
    """Applying an append-if-absent rule twice yields a single line."""
    rule = DirectiveRule.append_if_absent("AllowUsers", "alice")

    once = apply_directives("", [rule])
    twice = apply_directives(once, [rule])

    assert once == "AllowUsers alice\n"
    assert twice == "AllowUsers alice\n"


@pytest.mark.parametrize(
    "rule",
    [
        DirectiveRule.replace("PermitRootLogin", "no"),
        DirectiveRule.replace("PasswordAuthentication", "no"),
        DirectiveRule.replace("UsePAM", "yes"),
        DirectiveRule.append_if_absent("AllowUsers", "alice"),
        DirectiveRule.append_if_absent("Port", "22"),
    ],
)
def test_rules_are_idempotent(rule: DirectiveRule) -> None:
    """apply(apply(C, [R]), [R]) equals apply(C, [R])."""
    first = apply_directives(SSHD_SAMPLE, [rule])

    assert apply_directives(first, [rule]) == first


def test_other_keys_are_left_untouched() -> None:
    """Lines for other keys, including prefix look-alikes, never change."""
    rules = [
        DirectiveRule.replace("PermitRootLogin", "no"),
        DirectiveRule.replace("PasswordAuthentication", "no"),
    ]

    result = apply_directives(SSHD_SAMPLE, rules)

    assert "PermitRootLoginExtra whatever\n" in result
    assert "Port 2222\n" in result
    assert "X11Forwarding yes\n" in result
    assert "Subsystem sftp /usr/lib/openssh/sftp-server\n" in result
    assert "# Sample sshd_config\n" in result


def test_prose_comments_never_match() -> None:
    """A ``#`` followed by a space is commentary, not a disabled directive."""
    rule = DirectiveRule.replace("PasswordAuthentication", "no")

    result = apply_directives(SSHD_SAMPLE, [rule])

    assert "# PasswordAuthentication is discussed in the manual\n" in result
    assert result.count("PasswordAuthentication no\n") == 1


def test_replace_rewrites_every_matching_line() -> None:
    """Duplicate directives are all normalised to the rule value."""
    content = "X11Forwarding yes\nUsePAM yes\n#X11Forwarding yes\n"
    result = mutate(content, [DirectiveRule.replace("X11Forwarding", "no")])

    assert result.content == "X11Forwarding no\nUsePAM yes\nX11Forwarding no\n"
    assert result.changes[0].kind == "replaced"
    assert result.changes[0].lines == (1, 3)


def test_change_records_report_each_rule() -> None:
    """Each rule yields one change record describing its effect."""
    content = "PermitRootLogin no\nAllowUsers bob\n"
    result = mutate(
        content,
        [
            DirectiveRule.replace("PermitRootLogin", "no"),
            DirectiveRule.append_if_absent("AllowUsers", "alice"),
            DirectiveRule.replace("X11Forwarding", "no"),
        ],
    )

    assert [change.kind for change in result.changes] == ["unchanged", "present", "appended"]
    assert result.changes[1].lines == (2,)
    assert result.content.endswith("X11Forwarding no\n")
    assert result.changed is True


def test_equals_separator_and_crlf_are_respected() -> None:
    """``Key=value`` lines match and CRLF endings are preserved on rewrite."""
    content = "PermitRootLogin=yes\r\nUsePAM yes\r\n"

    result = apply_directives(content, [DirectiveRule.replace("PermitRootLogin", "no")])

    assert result == "PermitRootLogin no\r\nUsePAM yes\r\n"


def test_only_line_feeds_separate_lines() -> None:
    """Form feeds and other Unicode breaks stay inside their line, as sshd reads it."""
    rule = DirectiveRule.replace("PermitRootLogin", "no")
    content = (
        "PermitRootLogin yes\n"
        "Banner\x0b/etc/issue\x85\n"
        "Match\u2028User bob\rUseDNS no\n"
    )

    result = apply_directives(content, [rule])

    assert result == (
        "PermitRootLogin no\n"
        "Banner\x0b/etc/issue\x85\n"
        "Match\u2028User bob\rUseDNS no\n"
    )
    assert split_lines(content)[1] == "Banner\x0b/etc/issue\x85\n"
    assert apply_directives("#PermitRootLogin yes\x0cUseDNS no\nUsePAM yes\n", [rule]) == (
        "PermitRootLogin no\nUsePAM yes\n"
    )


def test_append_adds_missing_trailing_newline() -> None:
    """Appending never glues the new directive onto the last line."""
    result = apply_directives("UsePAM yes", [DirectiveRule.replace("X11Forwarding", "no")])

    assert result == "UsePAM yes\nX11Forwarding no\n"


def test_matching_is_case_sensitive() -> None:
    """Keys differing only by case are distinct directives."""
    result = apply_directives(
        "permitrootlogin yes\n", [DirectiveRule.replace("PermitRootLogin", "no")]
    )

    assert result == "permitrootlogin yes\nPermitRootLogin no\n"


def test_multi_token_keys_match_prefix() -> None:
    """Firewall style keys match on their full token prefix."""
    rule = DirectiveRule.append_if_absent("allow 22/tcp", "SSH")

    assert matches("allow 22/tcp OpenSSH", rule)
    assert matches("#allow 22/tcp", rule)
    assert not matches("allow 2222/tcp", rule)
    assert not matches("deny 22/tcp", rule)


def test_line_tokens_and_find_directive() -> None:
    """Helpers expose tokens and the first live directive value."""
    assert line_tokens("  #Port 22") == ("Port", "22")
    assert line_tokens("# Port 22") == ()
    assert line_tokens("") == ()
    assert find_directive(SSHD_SAMPLE, "Port") == "2222"
    assert find_directive(SSHD_SAMPLE, "PermitRootLogin") is None
    assert find_directive("#Port 22\n", "Port") is None


def test_rule_rejects_blank_key_and_renders_value() -> None:
    """Rules need a key; an empty value renders the key alone."""
    with pytest.raises(ValueError):
        DirectiveRule.replace("   ", "no")

    assert DirectiveRule.replace("allow  80/tcp").render() == "allow 80/tcp"
    assert DirectiveRule.replace("Port", "22").render() == "Port 22"
