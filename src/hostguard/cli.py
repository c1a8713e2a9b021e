"""Typer-powered command line interface for ``hostguard``.

Each mutating command runs one guarded mutation cycle (snapshot, mutate,
validate, commit or roll back) and then asks the operator, in two stages,
before doing anything that could drop the current session.
"""
from __future__ import annotations

import textwrap
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .coordinator import ExternalValidator, GuardedMutationCoordinator, require_commit
from .directives import find_directive
from .errors import (
    BackupFailed,
    ExternalActionFailed,
    InputInvalid,
    ResourceUnavailable,
    RollbackFailed,
    ValidationFailed,
)
from .gate import ConfirmationGate, SessionContext
from .logging import OperationScope, StructuredLogger
from .models import ConfigurationResource, Decision, DirectiveRule, MutationCycle
from .providers import (
    ServiceController,
    SshdValidator,
    UfwProvider,
    ensure_manifest,
    firewall_rules,
    hardening_rules,
)
from .providers.ufw import parse_manifest
from .store import ConfigStore
from .validators import parse_port_batch, require_identifier, require_port

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to hostguard's YAML config file.",
)

DEFAULT_SSH_PORT = 22
RESOURCE_NAMES = ("ssh", "firewall")

SSH_TESTED_QUESTION = "Have you successfully tested SSH login with {user}? (y/n)"
SSH_RESTART_QUESTION = "Do you want to restart SSH service now? (y/n)"
FIREWALL_TESTED_QUESTION = (
    "Have you confirmed that port {port}/tcp is the port your SSH session uses? (y/n)"
)
FIREWALL_ENABLE_QUESTION = "Do you want to enable the firewall now? (y/n)"

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Guarded configuration changes for remote hosts.

        Every change is snapshotted, validated by the owning service's own
        checker and rolled back automatically when the check fails. Restarts
        and firewall activation only happen after an explicit two-step
        confirmation.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    store: ConfigStore
    sshd: SshdValidator
    ufw: UfwProvider
    services: ServiceController

    def resource(self, name: str) -> ConfigurationResource:
        """Return the guarded resource registered under *name*."""
        if name == "ssh":
            return ConfigurationResource(name="ssh", path=self.config.ssh.config_path)
        if name == "firewall":
            return ConfigurationResource(
                name="firewall", path=self.config.firewall.manifest_path
            )
        raise KeyError(name)


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc
    timeout = config.command_timeout
    runtime = RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        store=ConfigStore(),
        sshd=SshdValidator(binaries=config.ssh.sshd_bins, timeout=timeout),
        ufw=UfwProvider(ufw_bin=config.firewall.ufw_bin, timeout=timeout),
        services=ServiceController(
            systemctl_bin=config.systemd.systemctl_bin, timeout=timeout
        ),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the hostguard version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"hostguard {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = 2,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _ask(question: str) -> str:
    """Prompt for a free-text yes/no answer; an empty reply counts as no."""
    return str(typer.prompt(question, default="n", show_default=False))


def _prompt_identifier(message: str) -> str:
    while True:
        value = str(typer.prompt(message)).strip()
        try:
            return require_identifier(value)
        except InputInvalid as exc:
            console.print(f"[red]{exc}[/red]")


def _restart_hint(runtime: RuntimeContext) -> str:
    names = runtime.config.ssh.service_names
    command = f"{runtime.config.systemd.systemctl_bin} restart {names[0]}"
    if len(names) > 1:
        command += f" (or {', '.join(names[1:])})"
    return command


def _recovery_steps(runtime: RuntimeContext, resource: ConfigurationResource) -> list[str]:
    steps = [f"cp {resource.backup_path} {resource.path}"]
    if resource.name == "ssh":
        steps.append(_restart_hint(runtime))
    else:
        steps.append(f"{runtime.config.firewall.ufw_bin} disable")
    return steps


def _print_recovery(runtime: RuntimeContext, resource: ConfigurationResource) -> None:
    console.print(f"Backup file: {resource.backup_path}")
    console.print("To restore manually:")
    for step in _recovery_steps(runtime, resource):
        console.print(f"  {step}")


def _changed_count(cycle: MutationCycle) -> int:
    return sum(1 for change in cycle.changes if change.kind in {"replaced", "appended"})


def _run_cycle(
    runtime: RuntimeContext,
    op: OperationScope,
    resource: ConfigurationResource,
    rules: Sequence[DirectiveRule],
    validator: ExternalValidator,
) -> MutationCycle:
    """Run one guarded mutation cycle, translating failures to exit codes."""
    coordinator = GuardedMutationCoordinator(
        store=runtime.store,
        validator=validator,
        allow_unavailable=runtime.config.validation.allow_unavailable,
    )
    try:
        cycle = require_commit(coordinator.run(resource, rules))
    except RollbackFailed as exc:
        op.add_step("cycle.rollback", status="error", detail=str(exc))
        _print_recovery(runtime, resource)
        _command_error(op, str(exc), rc=int(exc.exit_code))
    except (BackupFailed, ResourceUnavailable) as exc:
        op.add_step("cycle.abort", status="error", detail=str(exc))
        console.print(f"Live file {resource.path} unchanged; no restore needed.")
        _command_error(op, str(exc), rc=int(exc.exit_code))
    except ValidationFailed as exc:
        op.add_step(
            "cycle.rollback",
            status="error",
            detail={"history": [state.value for state in exc.cycle.history]},
        )
        _print_recovery(runtime, resource)
        _command_error(
            op,
            str(exc),
            rc=int(exc.exit_code),
            errors=[exc.cycle.outcome.diagnostic if exc.cycle.outcome else str(exc)],
        )

    op.add_step(
        "cycle.commit",
        detail={
            "history": [state.value for state in cycle.history],
            "changes": {change.rule.key: change.kind for change in cycle.changes},
            "validation": cycle.outcome.status.value if cycle.outcome else None,
        },
    )
    for warning in cycle.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    return cycle


ssh_app = typer.Typer(help="Harden the SSH daemon configuration.")
firewall_app = typer.Typer(help="Build, validate and activate the UFW firewall.")
config_app = typer.Typer(help="Inspect hostguard configuration.")

app.add_typer(ssh_app, name="ssh")
app.add_typer(firewall_app, name="firewall")
app.add_typer(config_app, name="config")


@ssh_app.command("harden")
def ssh_harden(
    ctx: typer.Context,
    user: str | None = typer.Option(
        None,
        "--user",
        "-u",
        help="Account that keeps SSH access (prompted when omitted).",
    ),
    allow_user: bool = typer.Option(
        True,
        "--allow-user/--no-allow-user",
        help="Restrict SSH logins to the user with an AllowUsers directive.",
    ),
) -> None:
    """Disable root and password logins, then restart SSH after confirmation."""
    runtime = _get_runtime(ctx)
    resource = runtime.resource("ssh")

    with runtime.logger.operation(
        "ssh harden",
        args={"user": user, "allow_user": allow_user},
        target={"kind": "ssh", "path": resource.path},
    ) as op:
        if user is None:
            user = _prompt_identifier("User allowed to log in over SSH")
        else:
            try:
                user = require_identifier(user.strip())
            except InputInvalid as exc:
                _command_error(op, str(exc), rc=int(exc.exit_code))
        op.add_step("input.validate", detail={"user": user})

        rules = hardening_rules(user if allow_user else None)
        cycle = _run_cycle(runtime, op, resource, rules, runtime.sshd)
        changed = _changed_count(cycle)
        console.print(
            f"[green]Updated {resource.path} ({changed} directive(s) changed).[/green]"
        )
        console.print(f"Backup kept at {resource.backup_path}.")

        session = SessionContext(resource=resource)
        gate = ConfirmationGate(
            prompt=_ask,
            tested_question=SSH_TESTED_QUESTION.format(user=user),
            restart_question=SSH_RESTART_QUESTION,
        )
        decision = gate.await_confirmation(session)
        op.add_step("gate", detail={"decision": decision.value})

        if decision is Decision.DEFER:
            console.print(
                "[yellow]SSH service not restarted. The new configuration takes effect "
                "on the next restart.[/yellow]"
            )
            console.print(f"Test SSH login with {user} from a new terminal, then run:")
            console.print(f"  {_restart_hint(runtime)}")
            console.print("If the login fails, restore the previous configuration:")
            for step in _recovery_steps(runtime, resource):
                console.print(f"  {step}")
            op.success(
                "SSH configuration committed; restart deferred.",
                changed=changed,
                backups=[str(resource.backup_path)],
                warnings=cycle.warnings,
                context={"decision": decision.value},
            )
            return

        names = runtime.config.ssh.service_names
        try:
            service = gate.fire(session, lambda: runtime.services.restart_first_available(names))
        except ExternalActionFailed as exc:
            _print_recovery(runtime, resource)
            _command_error(
                op,
                f"SSH restart failed: {exc}",
                rc=int(exc.exit_code),
                errors=[str(exc), *exc.attempts],
            )
        op.add_step("service.restart", detail={"service": service})
        console.print(f"[green]Restarted {service}.[/green]")
        op.success(
            f"SSH configuration committed and {service} restarted.",
            changed=changed,
            backups=[str(resource.backup_path)],
            warnings=cycle.warnings,
            context={"decision": decision.value, "service": service},
        )


def _detect_ssh_port(runtime: RuntimeContext, op: OperationScope) -> int:
    """Return the port sshd listens on, falling back to 22."""
    resource = runtime.resource("ssh")
    try:
        content = runtime.store.read(resource)
    except ResourceUnavailable as exc:
        console.print(
            f"[yellow]Warning:[/yellow] {exc} Assuming SSH port {DEFAULT_SSH_PORT}."
        )
        return DEFAULT_SSH_PORT
    value = find_directive(content, "Port")
    if value is None:
        return DEFAULT_SSH_PORT
    try:
        return require_port(value)
    except InputInvalid as exc:
        _command_error(
            op,
            f"Cannot determine the SSH port from {resource.path}: {exc} "
            "Pass --ssh-port explicitly.",
            rc=int(exc.exit_code),
        )


def _render_manifest(content: str) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Line", justify="right")
    table.add_column("ufw command")
    table.add_column("Port")
    for directive in parse_manifest(content):
        port = "-" if directive.port is None else str(directive.port)
        table.add_row(str(directive.line), " ".join(directive.args), port)
    console.print(table)


@firewall_app.command("apply")
def firewall_apply(
    ctx: typer.Context,
    ports: str | None = typer.Option(
        None,
        "--ports",
        help="Comma-separated extra TCP ports to allow (e.g. 80,443).",
    ),
    ssh_port: int | None = typer.Option(
        None,
        "--ssh-port",
        min=1,
        max=65535,
        help="SSH port to keep open (defaults to the sshd_config Port, else 22).",
    ),
) -> None:
    """Write the firewall manifest and enable UFW after confirmation."""
    runtime = _get_runtime(ctx)
    resource = runtime.resource("firewall")

    with runtime.logger.operation(
        "firewall apply",
        args={"ports": ports, "ssh_port": ssh_port},
        target={"kind": "firewall", "path": resource.path},
    ) as op:
        if ssh_port is None:
            ssh_port = _detect_ssh_port(runtime, op)
        if ports is None:
            ports = str(
                typer.prompt(
                    "Additional TCP ports to allow (comma-separated, blank for none)",
                    default="",
                    show_default=False,
                )
            )
        try:
            batch = parse_port_batch(ports, runtime.config.ports.invalid_policy)
        except InputInvalid as exc:
            _command_error(op, str(exc), rc=int(exc.exit_code))
        for item in batch.skipped:
            console.print(f"[yellow]Skipping invalid port {item!r}.[/yellow]")
        op.add_step(
            "input.validate",
            detail={"ssh_port": ssh_port, "ports": batch.ports, "skipped": batch.skipped},
        )

        try:
            if ensure_manifest(resource.path):
                op.add_step("manifest.create", detail=resource.path)
        except OSError as exc:
            _command_error(
                op, f"Failed to create firewall manifest {resource.path}: {exc}", rc=3
            )

        provider = replace(runtime.ufw, required_ports=(ssh_port,))
        rules = firewall_rules(ssh_port, batch.ports)
        cycle = _run_cycle(runtime, op, resource, rules, provider)
        candidate = cycle.candidate or ""
        changed = _changed_count(cycle)
        console.print(
            f"[green]Updated {resource.path} ({changed} rule(s) changed).[/green]"
        )
        _render_manifest(candidate)
        console.print(
            f"[yellow]About to enable UFW. SSH port {ssh_port}/tcp stays open; all other "
            "inbound traffic not listed above will be denied.[/yellow]"
        )

        session = SessionContext(resource=resource)
        gate = ConfirmationGate(
            prompt=_ask,
            tested_question=FIREWALL_TESTED_QUESTION.format(port=ssh_port),
            restart_question=FIREWALL_ENABLE_QUESTION,
        )
        decision = gate.await_confirmation(session)
        op.add_step("gate", detail={"decision": decision.value})

        if decision is Decision.DEFER:
            console.print("[yellow]Firewall not enabled.[/yellow]")
            console.print("Enable it later with:")
            console.print("  hostguard firewall apply")
            console.print(f"Manifest backup: {resource.backup_path}")
            op.success(
                "Firewall manifest committed; activation deferred.",
                changed=changed,
                backups=[str(resource.backup_path)],
                warnings=cycle.warnings,
                context={"decision": decision.value},
            )
            return

        try:
            executed = gate.fire(session, lambda: provider.activate(candidate))
        except ExternalActionFailed as exc:
            _print_recovery(runtime, resource)
            _command_error(
                op,
                f"Firewall activation failed: {exc}",
                rc=int(exc.exit_code),
                errors=[str(exc), *exc.attempts],
            )
        op.add_step("firewall.enable", detail={"commands": executed})
        console.print("[green]Firewall enabled.[/green]")
        op.success(
            "Firewall manifest committed and UFW enabled.",
            changed=changed,
            backups=[str(resource.backup_path)],
            warnings=cycle.warnings,
            context={"decision": decision.value, "commands": executed},
        )


@app.command("restore")
def restore(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Resource to restore: ssh or firewall."),
) -> None:
    """Copy the last backup of a resource back over the live file."""
    runtime = _get_runtime(ctx)

    with runtime.logger.operation(
        "restore",
        args={"target": target},
        target={"kind": target},
    ) as op:
        if target not in RESOURCE_NAMES:
            _command_error(
                op,
                f"Unknown resource '{target}'. Choose one of: {', '.join(RESOURCE_NAMES)}.",
                rc=2,
            )
        resource = runtime.resource(target)
        try:
            backup_path = runtime.store.restore_from_backup(resource)
        except ResourceUnavailable as exc:
            _command_error(op, str(exc), rc=int(exc.exit_code))

        console.print(f"[green]Restored {resource.path} from {backup_path}.[/green]")
        if target == "ssh":
            console.print(f"Apply it with: {_restart_hint(runtime)}")
        op.success(
            f"Restored {resource.path} from backup.",
            changed=1,
            backups=[str(backup_path)],
        )


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = "\n".join(f"{name}: {item}" for name, item in value.items())
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
