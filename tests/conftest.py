"""Shared test fixtures for ggufswitch."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from ggufswitch.pointer import ModelPointer

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def models_dir(tmp_path: Path) -> Path:
    """A models directory holding ``a.gguf`` and ``b.gguf``."""
    directory = tmp_path / "models"
    directory.mkdir()
    (directory / "a.gguf").write_bytes(b"a" * 2048)
    (directory / "b.gguf").write_bytes(b"b" * 4096)
    return directory


@pytest.fixture
def pointer(models_dir: Path) -> ModelPointer:
    """A pointer in *models_dir* currently targeting ``a.gguf``."""
    os.symlink("a.gguf", models_dir / "current")
    return ModelPointer(models_dir)


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    return tmp_path / "model_switcher.lock"
