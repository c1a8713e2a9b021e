"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from hostguard.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "absent.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.logs_dir == Path("/var/log/hostguard")
    assert config.command_timeout == 60.0
    assert config.ssh.config_path == Path("/etc/ssh/sshd_config")
    assert config.ssh.sshd_bins == ("sshd", "/usr/sbin/sshd")
    assert config.ssh.service_names == ("ssh", "sshd")
    assert config.firewall.manifest_path == Path("/etc/hostguard/firewall.rules")
    assert config.ports.invalid_policy == "skip"
    assert config.validation.allow_unavailable is True
    assert config.systemd.systemctl_bin == "systemctl"


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "hostguard.yml"
    cfg.write_text(
        "logs_dir: {logs}\n"
        "command_timeout: 15\n"
        "ssh:\n"
        "  config_path: {sshd}\n"
        "  service_names: [sshd]\n"
        "ports:\n"
        "  invalid_policy: reject\n"
        "validation:\n"
        "  allow_unavailable: false\n".format(
            logs=tmp_path / "logs", sshd=tmp_path / "sshd_config"
        )
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.logs_dir == tmp_path / "logs"
    assert config.command_timeout == 15.0
    assert config.ssh.config_path == tmp_path / "sshd_config"
    assert config.ssh.service_names == ("sshd",)
    assert config.ports.invalid_policy == "reject"
    assert config.validation.allow_unavailable is False


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("firewall:\n  ufw_bin: /usr/sbin/ufw\n")
    env = {
        "HOSTGUARD_CONFIG_FILE": str(cfg),
        "HOSTGUARD_FIREWALL__UFW_BIN": "/opt/bin/ufw",
        "HOSTGUARD_SSH__SSHD_BINS": "/opt/sbin/sshd, sshd",
        "HOSTGUARD_VALIDATION__ALLOW_UNAVAILABLE": "false",
        "HOSTGUARD_COMMAND_TIMEOUT": "5",
    }

    config = load_config(env=env)

    assert config.config_file == cfg
    assert config.firewall.ufw_bin == "/opt/bin/ufw"
    assert config.ssh.sshd_bins == ("/opt/sbin/sshd", "sshd")
    assert config.validation.allow_unavailable is False
    assert config.command_timeout == 5.0


def test_overrides_win_over_everything(tmp_path: Path) -> None:
    """Programmatic overrides have the highest precedence."""
    env = {"HOSTGUARD_PORTS__INVALID_POLICY": "reject"}

    config = load_config(
        config_file=tmp_path / "absent.yml",
        env=env,
        overrides={"ports": {"invalid_policy": "skip"}},
    )

    assert config.ports.invalid_policy == "skip"


def test_invalid_config_file_raises(tmp_path: Path) -> None:
    """A top-level list raises a ConfigError."""
    cfg = tmp_path / "bad.yml"
    cfg.write_text("- not-a-mapping\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})


def test_unknown_top_level_key_raises(tmp_path: Path) -> None:
    """Unexpected top-level keys trigger ConfigError."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("unknown: value\n")

    with pytest.raises(ConfigError, match="Unknown configuration keys"):
        load_config(config_file=cfg, env={})


def test_unknown_section_key_raises(tmp_path: Path) -> None:
    """Extra nested keys produce ConfigError for clarity."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("ssh:\n  port: 22\n")

    with pytest.raises(ConfigError, match="Unknown ssh configuration keys"):
        load_config(config_file=cfg, env={})


def test_invalid_port_policy_raises(tmp_path: Path) -> None:
    """Unsupported batch policies raise ConfigError."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("ports:\n  invalid_policy: ignore\n")

    with pytest.raises(ConfigError, match="Unsupported ports.invalid_policy"):
        load_config(config_file=cfg, env={})


def test_non_boolean_allow_unavailable_raises(tmp_path: Path) -> None:
    """The UNAVAILABLE fallback switch must be a boolean."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("validation:\n  allow_unavailable: sometimes\n")

    with pytest.raises(ConfigError, match="must be a boolean"):
        load_config(config_file=cfg, env={})


def test_to_dict_is_serialisable(tmp_path: Path) -> None:
    """``to_dict`` renders paths as strings for ``config show``."""
    config = load_config(config_file=tmp_path / "absent.yml", env={})

    data = config.to_dict()

    assert data["config_file"] == str(tmp_path / "absent.yml")
    assert data["ssh"] == {
        "config_path": "/etc/ssh/sshd_config",
        "sshd_bins": ["sshd", "/usr/sbin/sshd"],
        "service_names": ["ssh", "sshd"],
    }
