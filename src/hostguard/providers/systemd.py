"""Systemd provider for querying and restarting host services."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from ..errors import ExternalActionFailed


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class ServiceController:
    """Thin wrapper over ``systemctl`` for the services hostguard reloads."""

    systemctl_bin: str = "systemctl"
    timeout: float | None = 60.0

    def is_active(self, name: str) -> bool:
        """Return ``True`` when ``systemctl is-active --quiet`` succeeds."""
        try:
            result = self._systemctl("is-active", "--quiet", name, check=False)
        except SystemdError:
            return False
        return result.returncode == 0

    def restart(self, name: str) -> subprocess.CompletedProcess[str]:
        """Restart *name*, raising :class:`SystemdError` on failure."""
        return self._systemctl("restart", name)

    def restart_first_available(self, names: Sequence[str]) -> str:
        """Restart the first matching service among *names* and return its name.

        An active service is preferred. When none is active every name is tried
        in order; if all restarts fail :class:`ExternalActionFailed` is raised.
        """
        if not names:
            raise ExternalActionFailed("No service names configured for restart.")
        for name in names:
            if self.is_active(name):
                try:
                    self.restart(name)
                except SystemdError as exc:
                    raise ExternalActionFailed(
                        str(exc), attempts=(f"{self.systemctl_bin} restart {name}",)
                    ) from exc
                return name

        attempts: list[str] = []
        failures: list[str] = []
        for name in names:
            attempts.append(f"{self.systemctl_bin} restart {name}")
            try:
                self.restart(name)
            except SystemdError as exc:
                failures.append(str(exc))
                continue
            return name
        raise ExternalActionFailed(
            "Failed to restart any of: " + ", ".join(names) + ". " + " | ".join(failures),
            attempts=tuple(attempts),
        )

    # ------------------------------------------------------------------
    def _systemctl(
        self,
        command: str,
        *args: str,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        argv: list[str] = [self.systemctl_bin, command, *args]
        return self._run_command(
            argv,
            check=check,
            error_prefix=f"{self.systemctl_bin} {command}",
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise SystemdError(f"{error_prefix} timed out after {self.timeout} seconds") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise SystemdError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["ServiceController", "SystemdError"]
