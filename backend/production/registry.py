"""
Derivation registry — maps transform/calculation keys to business-logic functions.

Two kinds, each with a fixed signature:
- transform:   fn(value, snapshot, history) -> derived value
                 reshapes one resolved source value (dropdown → checklist, etc.)
- calculation: fn(snapshot, history) -> derived value
                 derives a value when no single source field exists

`history` is the full {stage: {fieldKey: value}} record as of the cascade.
Functions must be pure. The cascade passes them copies, so mutating inputs
has no effect outside the call.
"""

import enum
from typing import Any, Callable

from .errors import UnknownTransformKey
from .snapshot import ScopingSnapshot

TransformFn = Callable[[Any, ScopingSnapshot, dict], Any]
CalculationFn = Callable[[ScopingSnapshot, dict], Any]


class DerivationKind(str, enum.Enum):
    TRANSFORM = "transform"
    CALCULATION = "calculation"


class TransformRegistry:
    """Named derivation functions, each bound to one DerivationKind."""

    def __init__(self):
        self._entries: dict[str, tuple[DerivationKind, Callable]] = {}

    def register(self, key: str, fn: Callable,
                 kind: DerivationKind = DerivationKind.TRANSFORM) -> Callable:
        """Register `fn` under `key`. Keys are unique across both kinds."""
        if not key:
            raise ValueError("Derivation key must be a non-empty string")
        if not callable(fn):
            raise ValueError(f"Derivation for {key} is not callable: {fn!r}")
        if key in self._entries:
            raise ValueError(f"Derivation already registered for key: {key}")
        self._entries[key] = (DerivationKind(kind), fn)
        return fn

    def transform(self, key: str):
        """Decorator form of register(key, fn, DerivationKind.TRANSFORM)."""
        def decorator(fn: TransformFn) -> TransformFn:
            return self.register(key, fn, DerivationKind.TRANSFORM)
        return decorator

    def calculation(self, key: str):
        """Decorator form of register(key, fn, DerivationKind.CALCULATION)."""
        def decorator(fn: CalculationFn) -> CalculationFn:
            return self.register(key, fn, DerivationKind.CALCULATION)
        return decorator

    def get(self, key: str, kind: DerivationKind = None) -> Callable:
        """Returns the function for a key, or raises UnknownTransformKey."""
        if key not in self._entries:
            raise UnknownTransformKey(key, f"available: {self.list_keys()}")
        registered_kind, fn = self._entries[key]
        if kind is not None and registered_kind != DerivationKind(kind):
            raise UnknownTransformKey(
                key, f"registered as {registered_kind.value}, not {DerivationKind(kind).value}"
            )
        return fn

    def kind_of(self, key: str) -> DerivationKind:
        if key not in self._entries:
            raise UnknownTransformKey(key)
        return self._entries[key][0]

    def has(self, key: str) -> bool:
        return key in self._entries

    def list_keys(self) -> list[str]:
        return list(self._entries.keys())

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._entries)
