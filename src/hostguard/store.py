"""Snapshot, write and restore discipline for guarded configuration files."""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .errors import BackupFailed, ResourceUnavailable, RollbackFailed
from .models import BackupHandle, ConfigurationResource


def _atomic_write(path: Path, data: bytes, *, mode: int | None) -> None:
    """Durably replace *path* with *data*, preserving *mode* when given."""
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


@dataclass(slots=True)
class ConfigStore:
    """Read, snapshot, write and restore configuration resources.

    Each resource owns exactly one backup slot at ``<path>.backup``. A snapshot
    stays pending until :meth:`release` (commit) or :meth:`restore` resolves it;
    a second snapshot of the same resource while one is pending is refused so
    the recovery artifact of an open cycle is never overwritten.
    """

    _pending: dict[Path, BackupHandle] = field(default_factory=dict)

    def read(self, resource: ConfigurationResource) -> str:
        """Return the live content of *resource*."""
        try:
            return resource.path.read_bytes().decode("utf-8")
        except FileNotFoundError as exc:
            raise ResourceUnavailable(
                f"{resource.name} configuration {resource.path} does not exist."
            ) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ResourceUnavailable(
                f"Failed to read {resource.name} configuration {resource.path}: {exc}"
            ) from exc

    def pending(self, resource: ConfigurationResource) -> BackupHandle | None:
        """Return the unresolved snapshot for *resource*, if any."""
        return self._pending.get(resource.path)

    def snapshot(self, resource: ConfigurationResource) -> BackupHandle:
        """Copy the live content into the backup slot and return its handle."""
        if resource.path in self._pending:
            raise BackupFailed(
                f"A backup of {resource.path} is already pending; resolve it before "
                "starting another cycle."
            )
        try:
            data = resource.path.read_bytes()
            mode = resource.path.stat().st_mode & 0o7777
        except FileNotFoundError as exc:
            raise ResourceUnavailable(
                f"{resource.name} configuration {resource.path} does not exist."
            ) from exc
        except OSError as exc:
            raise ResourceUnavailable(
                f"Failed to read {resource.name} configuration {resource.path}: {exc}"
            ) from exc

        backup_path = resource.backup_path
        try:
            _atomic_write(backup_path, data, mode=mode)
            persisted = backup_path.read_bytes()
        except OSError as exc:
            raise BackupFailed(f"Failed to write backup {backup_path}: {exc}") from exc
        if persisted != data:
            raise BackupFailed(f"Backup {backup_path} does not match {resource.path}.")

        handle = BackupHandle(resource=resource, path=backup_path, content=data, mode=mode)
        self._pending[resource.path] = handle
        return handle

    def write(self, resource: ConfigurationResource, content: str) -> None:
        """Replace the live content of *resource* with *content*."""
        try:
            mode = resource.path.stat().st_mode & 0o7777
        except FileNotFoundError:
            mode = None
        except OSError as exc:
            raise ResourceUnavailable(f"Failed to stat {resource.path}: {exc}") from exc
        try:
            _atomic_write(resource.path, content.encode("utf-8"), mode=mode)
        except OSError as exc:
            raise ResourceUnavailable(f"Failed to write {resource.path}: {exc}") from exc

    def restore(self, handle: BackupHandle) -> None:
        """Put the captured content back and verify it landed byte-identical."""
        if handle.restored:
            return
        live = handle.resource.path
        try:
            _atomic_write(live, handle.content, mode=handle.mode)
            restored = live.read_bytes()
        except OSError as exc:
            raise RollbackFailed(
                f"Failed to restore {live} from {handle.path}: {exc}",
                backup_path=handle.path,
            ) from exc
        if restored != handle.content:
            raise RollbackFailed(
                f"Restored {live} does not match backup {handle.path}.",
                backup_path=handle.path,
            )
        handle.restored = True
        self._resolve(handle)

    def release(self, handle: BackupHandle) -> None:
        """Mark the cycle owning *handle* as committed; the file stays on disk."""
        handle.released = True
        self._resolve(handle)

    def restore_from_backup(self, resource: ConfigurationResource) -> Path:
        """Copy the on-disk backup slot over the live file (operator recovery)."""
        backup_path = resource.backup_path
        try:
            data = backup_path.read_bytes()
            mode = backup_path.stat().st_mode & 0o7777
        except FileNotFoundError as exc:
            raise ResourceUnavailable(f"No backup found at {backup_path}.") from exc
        except OSError as exc:
            raise ResourceUnavailable(f"Failed to read backup {backup_path}: {exc}") from exc
        handle = BackupHandle(resource=resource, path=backup_path, content=data, mode=mode)
        self.restore(handle)
        return backup_path

    # ------------------------------------------------------------------
    def _resolve(self, handle: BackupHandle) -> None:
        current = self._pending.get(handle.resource.path)
        if current is handle:
            del self._pending[handle.resource.path]


__all__ = ["ConfigStore"]
