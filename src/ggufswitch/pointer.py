"""The active-model pointer: a symlink swapped by create-temp-then-rename.

Targets are written relative to the models directory (just the filename) so
the same link resolves on the host and inside the container's bind mount.
``os.replace`` is atomic on POSIX, so a concurrent reader sees either the
old target or the new one, never a missing link.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path

from ggufswitch.errors import ModelFileMissingError, RollbackError

logger = logging.getLogger(__name__)

LAST_SELECTED_MARKER = ".last_selected_model"
PREVIOUS_MARKER = ".previous_model"


def _atomic_symlink(target: str, link: Path) -> None:
    """Point *link* at *target* without a window where *link* is absent."""
    tmp = link.with_name(f"{link.name}.tmp.{os.getpid()}")
    with contextlib.suppress(FileNotFoundError):
        tmp.unlink()
    os.symlink(target, tmp)
    try:
        os.replace(tmp, link)
    except OSError:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()
        raise


class ModelPointer:
    """File-backed handle on the active-model symlink and its backup.

    Parameters
    ----------
    models_dir:
        Directory containing the artifacts and both links.
    pointer_name:
        Filename of the active pointer.
    backup_name:
        Filename of the rollback copy.
    """

    def __init__(
        self,
        models_dir: Path,
        pointer_name: str = "current",
        backup_name: str = ".current_backup",
    ) -> None:
        self.models_dir = models_dir
        self.path = models_dir / pointer_name
        self.backup_path = models_dir / backup_name

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read_target(self) -> str | None:
        """Return the raw symlink target, or None if the pointer is absent."""
        return self._readlink(self.path)

    def current_name(self) -> str | None:
        """Return the filename the pointer targets.

        Absolute targets are reduced to their basename; relative ones are
        returned as written.
        """
        target = self.read_target()
        if target is None:
            return None
        if os.path.isabs(target):
            return Path(target).name
        return target

    def exists(self) -> bool:
        return self.path.is_symlink()

    def is_dangling(self) -> bool:
        """True when the pointer exists but its target does not."""
        return self.path.is_symlink() and not self.path.exists()

    def has_backup(self) -> bool:
        return self.backup_path.is_symlink()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def swap(self, model_name: str) -> None:
        """Atomically repoint the active pointer at *model_name*.

        Raises
        ------
        ModelFileMissingError
            If the artifact is not a file in the models directory.
        """
        target_path = self.models_dir / model_name
        if not target_path.is_file():
            raise ModelFileMissingError(target_path)
        _atomic_symlink(model_name, self.path)
        logger.info("Symlink %s now points to %s", self.path, model_name)

    def snapshot(self) -> str | None:
        """Copy the current target into the backup link.

        Returns the snapshotted target, or None when there is no pointer to
        back up (first-ever switch).
        """
        target = self.read_target()
        if target is None:
            return None
        _atomic_symlink(target, self.backup_path)
        logger.info("Backed up current symlink (%s) for potential rollback", target)
        return target

    def restore(self) -> str:
        """Repoint the active pointer at the backup target and drop the backup.

        Raises
        ------
        RollbackError
            If no backup exists, its target file is gone, or the rename fails.
        """
        target = self._readlink(self.backup_path)
        if target is None:
            msg = f"No backup symlink at {self.backup_path}"
            raise RollbackError(msg)
        if not self.backup_path.exists():
            msg = f"Backup target {target} no longer exists; nothing to roll back to"
            raise RollbackError(msg)
        try:
            _atomic_symlink(target, self.path)
        except OSError as exc:
            msg = f"Failed to restore backup symlink: {exc}"
            raise RollbackError(msg) from exc
        self.discard_backup()
        logger.info("Reverted symlink %s to %s", self.path, target)
        return target

    def discard_backup(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.backup_path.unlink()

    # ------------------------------------------------------------------
    # History markers
    # ------------------------------------------------------------------

    def record_history(self, selected: str, previous: str | None) -> None:
        """Write the last-selected and previous-model markers (best-effort)."""
        markers = {LAST_SELECTED_MARKER: selected}
        if previous:
            markers[PREVIOUS_MARKER] = previous
        for filename, value in markers.items():
            try:
                (self.models_dir / filename).write_text(value + "\n", encoding="utf-8")
            except OSError as exc:
                logger.warning("Could not write history marker %s: %s", filename, exc)

    def read_history(self) -> dict[str, str | None]:
        """Return ``{"last_selected": ..., "previous": ...}`` from the markers."""
        return {
            "last_selected": self._read_marker(LAST_SELECTED_MARKER),
            "previous": self._read_marker(PREVIOUS_MARKER),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_marker(self, filename: str) -> str | None:
        try:
            value = (self.models_dir / filename).read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return value or None

    @staticmethod
    def _readlink(link: Path) -> str | None:
        try:
            return os.readlink(link)
        except OSError:
            return None
