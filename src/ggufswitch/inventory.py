"""Model inventory: listing artifacts and validating the operator's pick."""

from __future__ import annotations

import fnmatch
import logging
import re
from typing import TYPE_CHECKING

from ggufswitch.errors import (
    InvalidSelectionError,
    ModelsDirNotFoundError,
    NoModelsFoundError,
)
from ggufswitch.models import ModelFile

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from ggufswitch.pointer import ModelPointer

logger = logging.getLogger(__name__)

_INDEX_PATTERN: re.Pattern[str] = re.compile(r"^[0-9]+$")


def enumerate_models(directory: Path, pattern: str = "*.gguf") -> list[ModelFile]:
    """List model artifacts directly inside *directory*, sorted by name.

    Only regular files are considered, so the active pointer and its backup
    never show up as candidates.  Matching is case-insensitive.

    Raises
    ------
    ModelsDirNotFoundError
        If *directory* does not exist or is not a directory.
    NoModelsFoundError
        If no file matches *pattern*.
    """
    if not directory.is_dir():
        raise ModelsDirNotFoundError(directory)

    lowered = pattern.lower()
    models: list[ModelFile] = []
    for entry in directory.iterdir():
        if entry.is_symlink() or not entry.is_file():
            continue
        if not fnmatch.fnmatchcase(entry.name.lower(), lowered):
            continue
        models.append(
            ModelFile(
                name=entry.name,
                size_bytes=entry.stat().st_size,
                path=entry.resolve(),
            )
        )

    if not models:
        raise NoModelsFoundError(directory, pattern)

    models.sort(key=lambda m: m.name)
    logger.debug("Found %d model(s) in %s", len(models), directory)
    return models


def resolve_current(pointer: ModelPointer) -> str | None:
    """Return the model name the pointer targets, or None if there is no pointer."""
    name = pointer.current_name()
    if name is None:
        logger.warning("No current model symlink found at %s", pointer.path)
        return None
    if pointer.is_dangling():
        logger.warning("Current model symlink points to missing file %s", name)
    return name


def select_model(choice: str | int, available: Sequence[ModelFile]) -> ModelFile:
    """Validate the operator's index and return the matching artifact.

    Raises
    ------
    InvalidSelectionError
        If *choice* is not a non-negative integer below ``len(available)``.
    """
    if isinstance(choice, bool):
        raise InvalidSelectionError(choice, len(available))
    if isinstance(choice, int):
        index = choice
    else:
        text = choice.strip()
        if not _INDEX_PATTERN.match(text):
            raise InvalidSelectionError(choice, len(available))
        index = int(text)

    if index < 0 or index >= len(available):
        raise InvalidSelectionError(choice, len(available))
    return available[index]
