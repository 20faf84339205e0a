"""ggufswitch - hot-swap the model behind a llama.cpp inference container."""

from __future__ import annotations

__version__ = "0.1.0"

from ggufswitch.models import ModelFile, SwitchOutcome, SwitchResult
from ggufswitch.pointer import ModelPointer
from ggufswitch.switcher import ModelSwitcher

__all__ = [
    "__version__",
    "ModelFile",
    "ModelPointer",
    "ModelSwitcher",
    "SwitchOutcome",
    "SwitchResult",
]
