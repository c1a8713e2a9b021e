"""OpenSSH daemon provider: candidate validation with ``sshd -t``."""
from __future__ import annotations

import os
import subprocess
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..capability import detect_binary
from ..models import Capability, CapabilityStatus, DirectiveRule, ValidationOutcome

DEFAULT_SSHD_BINS: tuple[str, ...] = ("sshd", "/usr/sbin/sshd")


def hardening_rules(allowed_user: str | None) -> list[DirectiveRule]:
    """Return the ordered SSH hardening rule set.

    Authentication rules come first; the ``AllowUsers`` restriction is added
    last and only when absent so an existing allow-list is never duplicated.
    """
    rules = [
        DirectiveRule.replace("PermitRootLogin", "no"),
        DirectiveRule.replace("PasswordAuthentication", "no"),
        DirectiveRule.replace("PubkeyAuthentication", "yes"),
        DirectiveRule.replace("ChallengeResponseAuthentication", "no"),
        DirectiveRule.replace("X11Forwarding", "no"),
    ]
    if allowed_user:
        rules.append(
            DirectiveRule.append_if_absent("AllowUsers", allowed_user, verify_if_present=True)
        )
    return rules


@dataclass(slots=True)
class SshdValidator:
    """Check candidate sshd_config content without touching the live file."""

    binaries: tuple[str, ...] = DEFAULT_SSHD_BINS
    timeout: float | None = 60.0

    def capability(self) -> Capability:
        """Return the tri-state availability of the sshd binary."""
        return detect_binary(self.binaries)

    def check(self, candidate: str) -> ValidationOutcome:
        """Run ``sshd -t -f`` against *candidate* materialised in a temp file."""
        capability = self.capability()
        if capability.status is CapabilityStatus.ABSENT:
            return ValidationOutcome.unavailable(
                f"Could not find sshd binary to test config ({capability.detail})."
            )
        if capability.status is CapabilityStatus.ERROR or capability.path is None:
            return ValidationOutcome.failed(f"sshd binary unusable: {capability.detail}")

        try:
            tmp_fd, tmp_name = tempfile.mkstemp(prefix="hostguard-sshd-", suffix=".conf")
        except OSError as exc:
            return ValidationOutcome.failed(f"Could not create temporary sshd config: {exc}")
        tmp_path = Path(tmp_name)
        try:
            try:
                with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                    handle.write(candidate)
                os.chmod(tmp_path, 0o600)
            except OSError as exc:
                return ValidationOutcome.failed(
                    f"Could not write temporary sshd config {tmp_path}: {exc}"
                )
            try:
                result = self._run([capability.path, "-t", "-f", str(tmp_path)])
            except subprocess.TimeoutExpired:
                return ValidationOutcome.failed(
                    f"{capability.path} -t timed out after {self.timeout} seconds."
                )
            except OSError as exc:
                return ValidationOutcome.failed(f"Failed to run {capability.path}: {exc}")
        finally:
            tmp_path.unlink(missing_ok=True)

        if result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            message = message.replace(str(tmp_path), "<candidate>")
            return ValidationOutcome.failed(
                f"sshd -t failed (exit {result.returncode}): {message}"
            )
        return ValidationOutcome.passed()

    # ------------------------------------------------------------------
    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(  # noqa: S603 - resolved binary, fixed arguments
            list(args),
            capture_output=True,
            text=True,
            check=False,
            timeout=self.timeout,
        )


__all__ = ["DEFAULT_SSHD_BINS", "SshdValidator", "hardening_rules"]
