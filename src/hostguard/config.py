"""Configuration loader for hostguard.

Configuration values are merged from, in increasing precedence:

1. Built-in defaults.
2. ``/etc/hostguard/config.yml`` (or an override path).
3. Environment variables prefixed with ``HOSTGUARD_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export HOSTGUARD_SSH__CONFIG_PATH=/etc/ssh/sshd_config
    export HOSTGUARD_PORTS__INVALID_POLICY=reject

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
lists are parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import copy
import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

from .validators import BATCH_POLICIES, BatchPolicy

ENV_PREFIX = "HOSTGUARD_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SshConfig:
    """Location of the SSH daemon configuration and its tooling."""

    config_path: Path = Path("/etc/ssh/sshd_config")
    sshd_bins: tuple[str, ...] = ("sshd", "/usr/sbin/sshd")
    service_names: tuple[str, ...] = ("ssh", "sshd")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "config_path": str(self.config_path),
            "sshd_bins": list(self.sshd_bins),
            "service_names": list(self.service_names),
        }


@dataclass(frozen=True)
class FirewallConfig:
    """Firewall manifest location and the ufw binary."""

    manifest_path: Path = Path("/etc/hostguard/firewall.rules")
    ufw_bin: str = "ufw"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"manifest_path": str(self.manifest_path), "ufw_bin": self.ufw_bin}


@dataclass(frozen=True)
class PortsConfig:
    """Policy for batches of operator-supplied ports."""

    invalid_policy: BatchPolicy = "skip"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"invalid_policy": self.invalid_policy}


@dataclass(frozen=True)
class ValidationConfig:
    """How missing external checkers are treated."""

    allow_unavailable: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"allow_unavailable": self.allow_unavailable}


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration configuration values."""

    systemctl_bin: str = "systemctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"systemctl_bin": self.systemctl_bin}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for hostguard."""

    config_file: Path
    logs_dir: Path
    command_timeout: float
    ssh: SshConfig
    firewall: FirewallConfig
    ports: PortsConfig
    validation: ValidationConfig
    systemd: SystemdConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "command_timeout": self.command_timeout,
            "ssh": self.ssh.to_dict(),
            "firewall": self.firewall.to_dict(),
            "ports": self.ports.to_dict(),
            "validation": self.validation.to_dict(),
            "systemd": self.systemd.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/hostguard/config.yml",
    "logs_dir": "/var/log/hostguard",
    "command_timeout": 60.0,
    "ssh": {
        "config_path": "/etc/ssh/sshd_config",
        "sshd_bins": ["sshd", "/usr/sbin/sshd"],
        "service_names": ["ssh", "sshd"],
    },
    "firewall": {
        "manifest_path": "/etc/hostguard/firewall.rules",
        "ufw_bin": "ufw",
    },
    "ports": {"invalid_policy": "skip"},
    "validation": {"allow_unavailable": True},
    "systemd": {"systemctl_bin": "systemctl"},
}

SECTION_KEYS: dict[str, frozenset[str]] = {
    name: frozenset(cast(Mapping[str, object], value))
    for name, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Resolve defaults, the YAML file, ``HOSTGUARD_*`` variables and overrides."""
    environ = os.environ if env is None else env
    if config_file:
        config_path = Path(config_file)
    else:
        config_path = Path(environ.get(CONFIG_ENV_VAR, str(DEFAULTS["config_file"])))

    merged = copy.deepcopy(DEFAULTS)
    for layer in (_read_file(config_path), _env_layer(environ), overrides or {}):
        _merge_into(merged, layer)
    merged["config_file"] = str(config_path)

    _check_keys(merged)
    return _build(merged)


def _read_file(path: Path) -> Mapping[str, object]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _section(data, f"file:{path}")


def _env_layer(environ: Mapping[str, str]) -> dict[str, object]:
    layer: dict[str, object] = {}
    for key, raw in environ.items():
        if key == CONFIG_ENV_VAR or not key.startswith(ENV_PREFIX):
            continue
        *parents, leaf = [part.lower() for part in key[len(ENV_PREFIX) :].split("__")]
        if not leaf or not all(parents):
            continue
        node: MutableMapping[str, object] = layer
        for part in parents:
            child = node.setdefault(part, {})
            if not isinstance(child, MutableMapping):
                raise ConfigError(f"Environment variable {key} conflicts with a scalar value.")
            node = cast(MutableMapping[str, object], child)
        node[leaf] = _parse_env_value(raw)
    return layer


def _parse_env_value(raw: str) -> object:
    try:
        return yaml.safe_load(raw.strip())
    except yaml.YAMLError:
        return raw.strip()


def _merge_into(target: MutableMapping[str, object], layer: Mapping[str, object]) -> None:
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, MutableMapping) and isinstance(value, Mapping):
            _merge_into(cast(MutableMapping[str, object], current), _section(value, key))
        else:
            target[key] = value


def _check_keys(raw: Mapping[str, object]) -> None:
    unknown = sorted(set(raw) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}.")
    for name, allowed in SECTION_KEYS.items():
        extra = sorted(set(_section(raw.get(name), name)) - allowed)
        if extra:
            raise ConfigError(f"Unknown {name} configuration keys: {', '.join(extra)}.")


def _build(raw: Mapping[str, object]) -> AppConfig:
    ssh = _section(raw.get("ssh"), "ssh")
    firewall = _section(raw.get("firewall"), "firewall")
    ports = _section(raw.get("ports"), "ports")
    validation = _section(raw.get("validation"), "validation")
    systemd = _section(raw.get("systemd"), "systemd")

    policy = str(ports.get("invalid_policy"))
    if policy not in BATCH_POLICIES:
        raise ConfigError(
            f"Unsupported ports.invalid_policy '{policy}'. "
            f"Allowed: {', '.join(BATCH_POLICIES)}."
        )
    allow_unavailable = validation.get("allow_unavailable")
    if not isinstance(allow_unavailable, bool):
        raise ConfigError("validation.allow_unavailable must be a boolean.")

    return AppConfig(
        config_file=_path(raw.get("config_file"), "config_file"),
        logs_dir=_path(raw.get("logs_dir"), "logs_dir"),
        command_timeout=_positive_number(raw.get("command_timeout"), "command_timeout"),
        ssh=SshConfig(
            config_path=_path(ssh.get("config_path"), "ssh.config_path"),
            sshd_bins=_names(ssh.get("sshd_bins"), "ssh.sshd_bins"),
            service_names=_names(ssh.get("service_names"), "ssh.service_names"),
        ),
        firewall=FirewallConfig(
            manifest_path=_path(firewall.get("manifest_path"), "firewall.manifest_path"),
            ufw_bin=_text(firewall.get("ufw_bin"), "firewall.ufw_bin"),
        ),
        ports=PortsConfig(invalid_policy=cast(BatchPolicy, policy)),
        validation=ValidationConfig(allow_unavailable=allow_unavailable),
        systemd=SystemdConfig(
            systemctl_bin=_text(systemd.get("systemctl_bin"), "systemd.systemctl_bin"),
        ),
    )


def _section(value: object, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    bad = [key for key in value if not isinstance(key, str)]
    if bad:
        raise ConfigError(f"Mapping {label} must use string keys. Got {bad[0]!r}.")
    return dict(value)


def _text(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Expected {label} to be a non-empty string. Got {value!r}.")
    return value.strip()


def _path(value: object, label: str) -> Path:
    if isinstance(value, Path):
        return value.expanduser()
    return Path(_text(value, label)).expanduser()


def _names(value: object, label: str) -> tuple[str, ...]:
    if isinstance(value, str):
        items: list[object] = list(value.split(","))
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ConfigError(f"Expected {label} to be a list of strings. Got {type(value).__name__}.")
    names: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ConfigError(f"Expected {label} entries to be strings. Got {item!r}.")
        if item.strip():
            names.append(item.strip())
    if not names:
        raise ConfigError(f"{label} must contain at least one entry.")
    return tuple(names)


def _positive_number(value: object, label: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    try:
        number = float(cast(float, value))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    if number <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {number}.")
    return number


__all__ = [
    "AppConfig",
    "ConfigError",
    "FirewallConfig",
    "PortsConfig",
    "SshConfig",
    "SystemdConfig",
    "ValidationConfig",
    "load_config",
]
