"""UFW provider: manifest translation, dry-run validation and activation.

hostguard keeps the desired firewall state in a line-oriented manifest so the
same guarded mutation cycle used for ``sshd_config`` applies to the firewall::

    default-incoming deny
    default-outgoing allow
    allow 22/tcp SSH
    allow 443/tcp

Each live line maps onto one ``ufw`` command. Validation replays the manifest
with ``ufw --dry-run``; activation replays it for real and enables UFW.
"""
from __future__ import annotations

import os
import subprocess
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..capability import detect_binary
from ..directives import is_commented
from ..errors import ExternalActionFailed
from ..models import Capability, CapabilityStatus, DirectiveRule, ValidationOutcome

MANIFEST_HEADER = "# Firewall manifest managed by hostguard. One ufw rule per line.\n"
POLICY_KEYS = {"default-incoming": "incoming", "default-outgoing": "outgoing"}
POLICIES = {"allow", "deny", "reject"}
RULE_ACTIONS = {"allow", "deny", "limit", "reject"}
PROTOCOLS = {"tcp", "udp"}


class UfwError(RuntimeError):
    """Raised when a manifest line cannot be translated to a ufw command."""


@dataclass(slots=True, frozen=True)
class FirewallDirective:
    """One manifest line translated to ``ufw`` arguments."""

    line: int
    args: tuple[str, ...]
    port: int | None = None
    protocol: str | None = None


def _parse_port(spec: str, line: int) -> tuple[int, str | None]:
    port_text, _, protocol = spec.partition("/")
    if not port_text.isdigit() or not 1 <= int(port_text) <= 65535:
        raise UfwError(f"line {line}: invalid port '{spec}'.")
    if protocol and protocol not in PROTOCOLS:
        raise UfwError(f"line {line}: unsupported protocol '{protocol}'.")
    return int(port_text), protocol or None


def parse_manifest(content: str) -> list[FirewallDirective]:
    """Translate every live manifest line into ufw arguments."""
    directives: list[FirewallDirective] = []
    for number, raw in enumerate(content.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or is_commented(stripped):
            continue
        tokens = stripped.split()
        head = tokens[0]
        if head in POLICY_KEYS:
            if len(tokens) != 2 or tokens[1] not in POLICIES:
                raise UfwError(f"line {number}: expected '{head} <allow|deny|reject>'.")
            directives.append(
                FirewallDirective(line=number, args=("default", tokens[1], POLICY_KEYS[head]))
            )
            continue
        if head in RULE_ACTIONS:
            if len(tokens) < 2:
                raise UfwError(f"line {number}: '{head}' requires a port.")
            port, protocol = _parse_port(tokens[1], number)
            args: tuple[str, ...] = (head, tokens[1])
            if len(tokens) > 2:
                args += ("comment", " ".join(tokens[2:]))
            directives.append(
                FirewallDirective(line=number, args=args, port=port, protocol=protocol)
            )
            continue
        raise UfwError(f"line {number}: unknown directive '{head}'.")
    return directives


def allowed_ports(content: str) -> set[int]:
    """Return the TCP ports the manifest lets in.

    ufw evaluates rules top to bottom, so the first rule naming a port decides
    whether that port is reachable.
    """
    decided: dict[int, bool] = {}
    for directive in parse_manifest(content):
        if directive.port is None or directive.protocol not in (None, "tcp"):
            continue
        decided.setdefault(directive.port, directive.args[0] in {"allow", "limit"})
    return {port for port, allowed in decided.items() if allowed}


def firewall_rules(ssh_port: int, ports: Iterable[int] = ()) -> list[DirectiveRule]:
    """Return the ordered firewall rule set for the manifest.

    Default policies are set first, then the SSH allowance, then any extra
    ports; allowances are only appended when absent.
    """
    rules = [
        DirectiveRule.replace("default-incoming", "deny"),
        DirectiveRule.replace("default-outgoing", "allow"),
        DirectiveRule.append_if_absent(f"allow {ssh_port}/tcp", "SSH"),
    ]
    for port in ports:
        if port == ssh_port:
            continue
        rules.append(DirectiveRule.append_if_absent(f"allow {port}/tcp"))
    return rules


def ensure_manifest(path: Path) -> bool:
    """Create an empty manifest at *path* when missing; return ``True`` if created."""
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(MANIFEST_HEADER, encoding="utf-8")
    os.chmod(path, 0o640)
    return True


@dataclass(slots=True)
class UfwProvider:
    """Validate and activate a firewall manifest through ``ufw``."""

    ufw_bin: str = "ufw"
    timeout: float | None = 60.0
    required_ports: tuple[int, ...] = ()

    def capability(self) -> Capability:
        """Return the tri-state availability of the ufw binary."""
        return detect_binary((self.ufw_bin,))

    def check(self, candidate: str) -> ValidationOutcome:
        """Replay *candidate* through ``ufw --dry-run`` without applying it."""
        try:
            directives = parse_manifest(candidate)
        except UfwError as exc:
            return ValidationOutcome.failed(f"Firewall manifest invalid: {exc}")
        blocked = sorted(set(self.required_ports) - allowed_ports(candidate))
        if blocked:
            joined = ", ".join(str(port) for port in blocked)
            return ValidationOutcome.failed(
                f"Firewall manifest would block required port(s) {joined}; refusing to lock "
                "out the current session."
            )

        capability = self.capability()
        if capability.status is CapabilityStatus.ABSENT:
            return ValidationOutcome.unavailable(
                f"Could not find ufw binary to test rules ({capability.detail})."
            )
        if capability.status is CapabilityStatus.ERROR or capability.path is None:
            return ValidationOutcome.failed(f"ufw binary unusable: {capability.detail}")

        for directive in directives:
            command = [capability.path, "--dry-run", *directive.args]
            try:
                result = self._run(command)
            except subprocess.TimeoutExpired:
                return ValidationOutcome.failed(
                    f"line {directive.line}: ufw --dry-run timed out after {self.timeout} seconds."
                )
            except OSError as exc:
                return ValidationOutcome.failed(f"Failed to run {capability.path}: {exc}")
            if result.returncode != 0:
                message = (result.stderr or result.stdout or "no output").strip()
                return ValidationOutcome.failed(
                    f"line {directive.line}: ufw {' '.join(directive.args)} rejected "
                    f"(exit {result.returncode}): {message}"
                )
        return ValidationOutcome.passed()

    def activate(self, content: str) -> list[str]:
        """Apply every manifest rule and enable UFW; return the commands run."""
        try:
            directives = parse_manifest(content)
        except UfwError as exc:
            raise ExternalActionFailed(f"Firewall manifest invalid: {exc}") from exc

        executed: list[str] = []
        commands = [list(directive.args) for directive in directives]
        commands.append(["--force", "enable"])
        for args in commands:
            rendered = " ".join([self.ufw_bin, *args])
            executed.append(rendered)
            try:
                result = self._run([self.ufw_bin, *args])
            except FileNotFoundError as exc:
                raise ExternalActionFailed(
                    f"{self.ufw_bin} not found: {exc}", attempts=tuple(executed)
                ) from exc
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise ExternalActionFailed(
                    f"{rendered} failed: {exc}", attempts=tuple(executed)
                ) from exc
            if result.returncode != 0:
                message = (result.stderr or result.stdout or "no output").strip()
                raise ExternalActionFailed(
                    f"{rendered} failed (exit {result.returncode}): {message}",
                    attempts=tuple(executed),
                )
        return executed

    # ------------------------------------------------------------------
    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(  # noqa: S603 - arguments come from the parsed manifest
            list(args),
            capture_output=True,
            text=True,
            check=False,
            timeout=self.timeout,
        )


__all__ = [
    "FirewallDirective",
    "MANIFEST_HEADER",
    "UfwError",
    "UfwProvider",
    "allowed_ports",
    "ensure_manifest",
    "firewall_rules",
    "parse_manifest",
]
