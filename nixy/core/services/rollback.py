"""
Rollback — undo a half-finished mutation after a failure or an interrupt.

A mutating command snapshots the persisted state before touching
anything, then runs inside a Transaction:

    with Transaction(context) as txn:
        mutate + save state
        write flake.nix
        build
        txn.commit()

If anything raises, the snapshot is written back, side effects (copied
package files, created profile directories, files moved aside) are
undone, flake.nix is regenerated from the original state, and the
error propagates. If SIGINT/SIGTERM arrives instead, the signal handler
performs the same restore through the shared module-level context and
exits with status 130.

Design notes:
    - One context per process, module-level, guarded by an RLock so a
      handler that interrupts the main thread while it holds the lock
      does not deadlock. Acquisition uses a timeout; failing to get the
      lock means "nothing to roll back", never a crash.
    - ``take_context`` clears as it reads: whichever of the failure
      path and the signal path takes the context first restores it,
      the other finds nothing.
    - ``commit`` clears the context *before* setting the completion
      flag; an interrupt that sees the flag does nothing at all.
"""

from __future__ import annotations

import logging
import shutil
import signal
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from nixy.core.errors import NixyError
from nixy.core.models.state import NixyConfig, PackageState
from nixy.core.persistence.state_file import save_nixy_config, save_package_state
from nixy.core.services.flake.files import regenerate_flake, write_flake

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 1.0
INTERRUPT_EXIT_CODE = 130
BACKUP_PREFIX = ".nixy-backup-"


# ── Snapshot types ──────────────────────────────────────────────


@dataclass
class LegacySnapshot:
    """A standalone flake directory with its own packages.json."""

    state_path: Path
    state: PackageState
    kind: Literal["legacy"] = "legacy"

    def package_state(self) -> PackageState:
        return self.state

    def restore(self) -> None:
        save_package_state(self.state, self.state_path)


@dataclass
class ProfileSnapshot:
    """The whole nixy.json store, plus which profile the flake belongs to."""

    config_path: Path
    config: NixyConfig
    profile_name: str
    kind: Literal["profiles"] = "profiles"

    def package_state(self) -> PackageState:
        return self.config.profiles.get(self.profile_name) or PackageState()

    def restore(self) -> None:
        save_nixy_config(self.config, self.config_path)


OriginalState = LegacySnapshot | ProfileSnapshot


@dataclass
class RollbackContext:
    """Everything needed to put the disk back the way it was."""

    flake_dir: Path
    packages_dir: Path | None
    original: OriginalState
    original_flake: str | None = None            # written back verbatim if set
    copied_file: Path | None = None              # local package file or flake dir copied in
    created_dir: Path | None = None              # profile directory created
    moved_aside: list[tuple[Path, Path]] = field(default_factory=list)  # (original, backup)


# ── Shared context ──────────────────────────────────────────────

_lock = threading.RLock()
_context: RollbackContext | None = None
_completed = threading.Event()


def set_context(context: RollbackContext) -> None:
    global _context
    if not _lock.acquire(timeout=LOCK_TIMEOUT):
        logger.warning("Could not register rollback context (lock busy)")
        return
    try:
        _context = context
    finally:
        _lock.release()


def clear_context() -> None:
    global _context
    if not _lock.acquire(timeout=LOCK_TIMEOUT):
        logger.warning("Could not clear rollback context (lock busy)")
        return
    try:
        _context = None
    finally:
        _lock.release()


def take_context() -> RollbackContext | None:
    """Remove and return the registered context, if any."""
    global _context
    if not _lock.acquire(timeout=LOCK_TIMEOUT):
        logger.warning("Could not take rollback context (lock busy)")
        return None
    try:
        context, _context = _context, None
        return context
    finally:
        _lock.release()


def is_completed() -> bool:
    return _completed.is_set()


def mark_completed() -> None:
    _completed.set()


def reset() -> None:
    """Forget any context and completion state (start of a new operation)."""
    clear_context()
    _completed.clear()


# ── Restore ─────────────────────────────────────────────────────


def perform_rollback(context: RollbackContext) -> list[str]:
    """Restore ``context``. Every step is attempted; failures are returned."""
    problems: list[str] = []

    def attempt(description: str, step: Callable[[], None]) -> None:
        try:
            step()
        except Exception as e:
            logger.warning("Rollback: failed to %s: %s", description, e)
            problems.append(f"{description}: {e}")

    attempt("restore state", context.original.restore)

    if context.copied_file is not None:
        copied = context.copied_file
        attempt(f"remove {copied}", lambda: _remove_path(copied))

    for original, backup in context.moved_aside:
        attempt(f"restore {original}", lambda o=original, b=backup: _move_back(b, o))

    if context.created_dir is not None:
        created = context.created_dir
        attempt(f"remove {created}", lambda: _remove_path(created))

    if _inside(context.flake_dir, context.created_dir):
        logger.debug("flake.nix went away with %s", context.created_dir)
    elif context.original_flake is not None:
        text = context.original_flake
        attempt("restore flake.nix", lambda: write_flake(context.flake_dir, text))
    else:
        attempt(
            "regenerate flake.nix",
            lambda: regenerate_flake(
                context.flake_dir, context.original.package_state(), context.packages_dir
            ),
        )

    if problems:
        logger.warning("Rollback finished with %d problem(s)", len(problems))
    else:
        logger.info("Rollback complete")
    return problems


def discard_backups(context: RollbackContext) -> None:
    """Delete files moved aside once the operation has committed."""
    for _, backup in context.moved_aside:
        try:
            if backup.is_dir():
                shutil.rmtree(backup)
            else:
                backup.unlink(missing_ok=True)
            _remove_empty_backup_dir(backup.parent)
        except OSError as e:
            logger.warning("Could not remove backup %s: %s", backup, e)


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


def _inside(path: Path, directory: Path | None) -> bool:
    return directory is not None and (path == directory or directory in path.parents)


def _move_back(backup: Path, original: Path) -> None:
    if original.exists():
        if original.is_dir():
            shutil.rmtree(original)
        else:
            original.unlink()
    shutil.move(str(backup), str(original))
    _remove_empty_backup_dir(backup.parent)


def _remove_empty_backup_dir(directory: Path) -> None:
    if directory.name.startswith(BACKUP_PREFIX) and directory.is_dir() and not any(directory.iterdir()):
        directory.rmdir()


# ── Transaction ─────────────────────────────────────────────────


class Transaction:
    """Arm the rollback context for the duration of a ``with`` block.

    Exiting the block normally commits. Exiting with an ``Exception``
    rolls back (if the signal path has not already) and re-raises.
    """

    def __init__(self, context: RollbackContext):
        self.context = context
        self.committed = False
        self.rolled_back = False
        self.problems: list[str] = []

    def __enter__(self) -> Transaction:
        _completed.clear()
        set_context(self.context)
        return self

    def commit(self) -> None:
        if self.committed:
            return
        clear_context()
        mark_completed()
        self.committed = True
        discard_backups(self.context)

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.commit()
            return False
        if isinstance(exc, Exception) and not self.committed:
            context = take_context()
            if context is not None:
                logger.warning("Operation failed (%s); rolling back", exc)
                self.problems = perform_rollback(context)
                self.rolled_back = True
                if isinstance(exc, NixyError):
                    exc.rolled_back = True
        return False


# ── Interrupts ──────────────────────────────────────────────────


def handle_interrupt() -> bool:
    """Roll back an in-flight operation after an interrupt.

    Returns True if a rollback was performed. Does nothing once the
    current operation has committed.
    """
    if is_completed():
        return False
    context = take_context()
    if context is None:
        return False
    perform_rollback(context)
    return True


def install_interrupt_handler(notify: Callable[[str], None] | None = None) -> None:
    """Route SIGINT and SIGTERM through ``handle_interrupt``, then exit 130."""

    def _on_signal(signum: int, frame: object) -> None:
        if handle_interrupt() and notify is not None:
            notify("Interrupted. Changes rolled back.")
        raise SystemExit(INTERRUPT_EXIT_CODE)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)
