"""Provider interfaces for hostguard."""
from __future__ import annotations

from .sshd import DEFAULT_SSHD_BINS, SshdValidator, hardening_rules
from .systemd import ServiceController, SystemdError
from .ufw import UfwError, UfwProvider, allowed_ports, ensure_manifest, firewall_rules

__all__ = [
    "DEFAULT_SSHD_BINS",
    "ServiceController",
    "SshdValidator",
    "SystemdError",
    "UfwError",
    "UfwProvider",
    "allowed_ports",
    "ensure_manifest",
    "firewall_rules",
    "hardening_rules",
]
