"""Tests for ggufswitch.pointer — atomic symlink swap, backup, history markers."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from ggufswitch.errors import ModelFileMissingError, RollbackError
from ggufswitch.pointer import LAST_SELECTED_MARKER, PREVIOUS_MARKER, ModelPointer


class TestRead:
    """Tests for reading the pointer."""

    def test_relative_target(self, pointer: ModelPointer) -> None:
        assert pointer.read_target() == "a.gguf"
        assert pointer.current_name() == "a.gguf"
        assert pointer.exists()
        assert not pointer.is_dangling()

    def test_absolute_target_reduced_to_basename(self, models_dir: Path) -> None:
        os.symlink(models_dir / "b.gguf", models_dir / "current")

        assert ModelPointer(models_dir).current_name() == "b.gguf"

    def test_absent(self, models_dir: Path) -> None:
        p = ModelPointer(models_dir)

        assert p.read_target() is None
        assert p.current_name() is None
        assert not p.exists()
        assert not p.is_dangling()

    def test_regular_file_is_not_a_pointer(self, models_dir: Path) -> None:
        (models_dir / "current").write_text("oops")

        assert ModelPointer(models_dir).read_target() is None

    def test_dangling(self, models_dir: Path) -> None:
        os.symlink("missing.gguf", models_dir / "current")

        assert ModelPointer(models_dir).is_dangling()


class TestSwap:
    """Tests for ModelPointer.swap()."""

    def test_swap_repoints_with_relative_target(self, pointer: ModelPointer) -> None:
        pointer.swap("b.gguf")

        assert os.readlink(pointer.path) == "b.gguf"
        assert pointer.path.resolve() == (pointer.models_dir / "b.gguf").resolve()

    def test_swap_creates_pointer_when_absent(self, models_dir: Path) -> None:
        p = ModelPointer(models_dir)

        p.swap("a.gguf")

        assert p.current_name() == "a.gguf"

    def test_swap_leaves_no_temp_links(self, pointer: ModelPointer) -> None:
        pointer.swap("b.gguf")

        leftovers = [e.name for e in pointer.models_dir.iterdir() if ".tmp." in e.name]
        assert leftovers == []

    def test_swap_uses_rename(self, pointer: ModelPointer) -> None:
        """The pointer is replaced in one rename, never unlinked first."""
        with patch("ggufswitch.pointer.os.replace", wraps=os.replace) as mock_replace:
            pointer.swap("b.gguf")

        mock_replace.assert_called_once()
        src, dst = mock_replace.call_args.args
        assert Path(dst) == pointer.path
        assert ".tmp." in Path(src).name

    def test_swap_missing_file_raises_and_keeps_pointer(self, pointer: ModelPointer) -> None:
        with pytest.raises(ModelFileMissingError):
            pointer.swap("nope.gguf")

        assert pointer.current_name() == "a.gguf"

    def test_failed_rename_cleans_up_and_keeps_pointer(self, pointer: ModelPointer) -> None:
        with (
            patch("ggufswitch.pointer.os.replace", side_effect=OSError("EXDEV")),
            pytest.raises(OSError, match="EXDEV"),
        ):
            pointer.swap("b.gguf")

        assert pointer.current_name() == "a.gguf"
        assert not any(".tmp." in e.name for e in pointer.models_dir.iterdir())


class TestBackup:
    """Tests for snapshot(), restore() and discard_backup()."""

    def test_snapshot_copies_target(self, pointer: ModelPointer) -> None:
        assert pointer.snapshot() == "a.gguf"

        assert pointer.has_backup()
        assert os.readlink(pointer.backup_path) == "a.gguf"

    def test_snapshot_without_pointer_returns_none(self, models_dir: Path) -> None:
        p = ModelPointer(models_dir)

        assert p.snapshot() is None
        assert not p.has_backup()

    def test_restore_repoints_and_consumes_backup(self, pointer: ModelPointer) -> None:
        pointer.snapshot()
        pointer.swap("b.gguf")

        assert pointer.restore() == "a.gguf"

        assert pointer.current_name() == "a.gguf"
        assert not pointer.has_backup()

    def test_restore_without_backup_raises(self, pointer: ModelPointer) -> None:
        with pytest.raises(RollbackError, match="No backup"):
            pointer.restore()

    def test_restore_refuses_dangling_backup(self, models_dir: Path) -> None:
        os.symlink("gone.gguf", models_dir / "current")
        p = ModelPointer(models_dir)
        p.snapshot()
        p.swap("b.gguf")

        with pytest.raises(RollbackError, match="gone.gguf no longer exists"):
            p.restore()

        assert p.current_name() == "b.gguf"

    def test_restore_rename_failure_raises_rollback_error(self, pointer: ModelPointer) -> None:
        pointer.snapshot()
        pointer.swap("b.gguf")

        with (
            patch("ggufswitch.pointer.os.replace", side_effect=OSError("busy")),
            pytest.raises(RollbackError, match="busy"),
        ):
            pointer.restore()

        assert pointer.current_name() == "b.gguf"

    def test_discard_backup_is_idempotent(self, pointer: ModelPointer) -> None:
        pointer.snapshot()

        pointer.discard_backup()
        pointer.discard_backup()

        assert not pointer.has_backup()


class TestHistory:
    """Tests for the history markers."""

    def test_record_and_read(self, pointer: ModelPointer) -> None:
        pointer.record_history("b.gguf", "a.gguf")

        assert (pointer.models_dir / LAST_SELECTED_MARKER).read_text() == "b.gguf\n"
        assert (pointer.models_dir / PREVIOUS_MARKER).read_text() == "a.gguf\n"
        assert pointer.read_history() == {"last_selected": "b.gguf", "previous": "a.gguf"}

    def test_no_previous_marker_without_previous(self, models_dir: Path) -> None:
        p = ModelPointer(models_dir)

        p.record_history("a.gguf", None)

        assert not (models_dir / PREVIOUS_MARKER).exists()
        assert p.read_history() == {"last_selected": "a.gguf", "previous": None}

    def test_write_failure_is_not_fatal(self, pointer: ModelPointer) -> None:
        with patch.object(Path, "write_text", side_effect=PermissionError("ro")):
            pointer.record_history("b.gguf", "a.gguf")

        assert pointer.read_history() == {"last_selected": None, "previous": None}
