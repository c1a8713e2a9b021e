"""Pure, idempotent directive upserts over line-oriented configuration text.

A directive line is ``<key> <value>``. Keys are matched against the leading
tokens of every line, whether the line is commented out (``#Key value``) or
live. A ``#`` followed by whitespace starts prose commentary and never
matches. Matching is case-sensitive and token-exact, so ``Port`` never matches
``PortForwarding``. Lines unrelated to the rule set are never touched.
"""
from __future__ import annotations

import re
from collections.abc import Iterable

from .models import (
    ChangeKind,
    DirectiveChange,
    DirectiveRule,
    MutationResult,
    UpsertPolicy,
)

_TOKEN_SPLIT = re.compile(r"[\s=]+")


def line_tokens(line: str) -> tuple[str, ...]:
    """Return the directive tokens of *line*, ignoring comment markers."""
    stripped = line.strip()
    if stripped.startswith("#"):
        stripped = stripped.lstrip("#")
        # "# Prose" is commentary; only "#Key value" is a disabled directive.
        if not stripped or stripped[0].isspace():
            return ()
    return tuple(token for token in _TOKEN_SPLIT.split(stripped) if token)


def is_commented(line: str) -> bool:
    """Return ``True`` when *line* is a comment."""
    return line.lstrip().startswith("#")


def matches(line: str, rule: DirectiveRule) -> bool:
    """Return ``True`` when *line* carries the directive key of *rule*."""
    key = rule.tokens
    tokens = line_tokens(line)
    return tokens[: len(key)] == key


def find_directive(content: str, key: str) -> str | None:
    """Return the value of the first live (uncommented) *key* directive."""
    lookup = DirectiveRule(key=key)
    for line in split_lines(content):
        if is_commented(line) or not matches(line, lookup):
            continue
        remainder = line_tokens(line)[len(lookup.tokens) :]
        return " ".join(remainder)
    return None


def split_lines(content: str) -> list[str]:
    """Split *content* on line feeds only, keeping each terminator."""
    lines = [line + "\n" for line in content.split("\n")]
    last = lines.pop()[:-1]
    if last:
        lines.append(last)
    return lines


def _line_ending(line: str) -> str:
    if line.endswith("\r\n"):
        return "\r\n"
    if line.endswith("\n"):
        return "\n"
    return ""


def _append(lines: list[str], rendered: str) -> int:
    if lines and not _line_ending(lines[-1]):
        lines[-1] = lines[-1] + "\n"
    lines.append(rendered + "\n")
    return len(lines)


def _apply_rule(lines: list[str], rule: DirectiveRule) -> DirectiveChange:
    rendered = rule.render()
    matched = [index for index, line in enumerate(lines) if matches(line, rule)]

    if rule.policy is UpsertPolicy.APPEND_IF_ABSENT:
        if matched:
            return DirectiveChange(
                rule=rule,
                kind="present",
                lines=tuple(index + 1 for index in matched),
            )
        return DirectiveChange(rule=rule, kind="appended", lines=(_append(lines, rendered),))

    if not matched:
        return DirectiveChange(rule=rule, kind="appended", lines=(_append(lines, rendered),))

    kind: ChangeKind = "unchanged"
    for index in matched:
        current = lines[index]
        ending = _line_ending(current)
        replacement = rendered + ending
        if current != replacement:
            lines[index] = replacement
            kind = "replaced"
    return DirectiveChange(rule=rule, kind=kind, lines=tuple(index + 1 for index in matched))


def mutate(content: str, rules: Iterable[DirectiveRule]) -> MutationResult:
    """Apply *rules* in order and report what each rule changed."""
    lines = split_lines(content)
    changes = [_apply_rule(lines, rule) for rule in rules]
    return MutationResult(content="".join(lines), changes=tuple(changes))


def apply_directives(content: str, rules: Iterable[DirectiveRule]) -> str:
    """Return *content* with *rules* applied in order."""
    return mutate(content, rules).content


__all__ = [
    "apply_directives",
    "find_directive",
    "is_commented",
    "line_tokens",
    "matches",
    "mutate",
    "split_lines",
]
