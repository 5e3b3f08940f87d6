"""Selector expression compilation and per-device bindings."""

from .bindings import DEVICE_MEMBERS, TYPED_MAP_NAMES, DeviceBindings, bindings_for
from .language import (
    MATCH_ALL,
    EvaluationResult,
    SelectorProgram,
    SelectorRuntimeError,
    compile_selector,
)

__all__ = [
    "DEVICE_MEMBERS",
    "DeviceBindings",
    "EvaluationResult",
    "MATCH_ALL",
    "SelectorProgram",
    "SelectorRuntimeError",
    "TYPED_MAP_NAMES",
    "bindings_for",
    "compile_selector",
]
