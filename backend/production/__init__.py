"""
Production pipeline — six-stage state machine with the prefill cascade.

Scheduling → Field Capture → Registration → BIM QC → PC Delivery → Final Delivery.
On each advance, the cascade pre-populates the next stage from the scoping form
and earlier stages, without overwriting anything an operator already entered.
"""

from .cascade import CascadeOutcome, CascadeResolver, PrefillResult, SkipCode, build_resolver, resolve
from .mappings import PREFILL_MAPPINGS, MappingTable, PrefillMapping, PrefillStrategy
from .registry import DerivationKind, TransformRegistry
from .stages import ProductionStage, is_adjacent, next_stage, stage_order

__all__ = [
    "CascadeOutcome",
    "CascadeResolver",
    "DerivationKind",
    "MappingTable",
    "PREFILL_MAPPINGS",
    "PrefillMapping",
    "PrefillResult",
    "PrefillStrategy",
    "ProductionStage",
    "SkipCode",
    "TransformRegistry",
    "build_resolver",
    "is_adjacent",
    "next_stage",
    "resolve",
    "stage_order",
]
