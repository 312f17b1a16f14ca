"""
Prefill Cascade Resolver.

Given a stage transition, the scoping snapshot and the full stage history,
resolves every applicable mapping and returns:
- data:    {fieldKey: value} for the mappings that produced a value
- results: one PrefillResult per mapping (including every skip) for preview + audit

Pure — no DB access, no writes, no mutation of its inputs. Safe to call for a
preview, before a commit, or concurrently for different projects.
"""

import copy
import enum
import logging
from functools import lru_cache
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticSerializationError

from .mappings import PREFILL_MAPPINGS, MappingTable, PrefillMapping, PrefillStrategy, chain_origin
from .registry import DerivationKind, TransformRegistry
from .snapshot import ScopingSnapshot, is_empty, lookup_history, resolve_source
from .stages import STAGE_DATA_MODELS, as_stage
from .transforms import build_default_registry

logger = logging.getLogger(__name__)


class SkipCode(str, enum.Enum):
    MANUAL = "manual"
    BLOCKED = "blocked"
    SOURCE_NOT_READY = "source_not_ready"
    DERIVATION_FAILED = "derivation_failed"


SKIP_REASONS = {
    SkipCode.MANUAL: "manual entry required",
    SkipCode.BLOCKED: "blocked: upstream field not built yet",
    SkipCode.SOURCE_NOT_READY: "source not yet filled",
    SkipCode.DERIVATION_FAILED: "derivation failed",
}


class PrefillResult(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    field: str
    value: Any = None
    mapping: PrefillMapping
    skipped: bool = False
    skip_code: Optional[SkipCode] = None
    skip_reason: Optional[str] = None


class CascadeOutcome(BaseModel):
    data: dict[str, Any]
    results: list[PrefillResult]


def _to_plain(value):
    """Snapshot models → plain dicts so prefill data stays JSON-storable."""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


class CascadeResolver:
    """Runs the mapping table for one transition against a project's history."""

    def __init__(self, table: MappingTable, registry: TransformRegistry):
        self.table = table
        self.registry = registry

    def resolve(self, from_stage, to_stage, snapshot: ScopingSnapshot,
                all_stage_data: Optional[dict]) -> CascadeOutcome:
        """
        Resolve every mapping for from_stage → to_stage.

        Raises InvalidTransition for non-adjacent stages before any mapping is read.
        Derivation problems never raise — they become skipped results.
        """
        from_stage, to_stage = as_stage(from_stage), as_stage(to_stage)
        mappings = self.table.mappings_for(from_stage, to_stage)
        history = all_stage_data or {}

        data: dict[str, Any] = {}
        results: list[PrefillResult] = []
        for mapping in mappings:
            result = self._resolve_mapping(mapping, snapshot, history)
            results.append(result)
            # Later mappings on the same field win, skip or not
            if result.skipped:
                data.pop(mapping.target_field, None)
            else:
                data[mapping.target_field] = result.value

        logger.debug(
            "Prefill cascade %s -> %s: %d resolved, %d skipped",
            from_stage.value, to_stage.value, len(data),
            sum(1 for r in results if r.skipped),
        )
        return CascadeOutcome(data=data, results=results)

    def _resolve_mapping(self, mapping: PrefillMapping, snapshot: ScopingSnapshot,
                         history: dict) -> PrefillResult:
        strategy = mapping.strategy

        if strategy == PrefillStrategy.MANUAL:
            return _skip(mapping, SkipCode.MANUAL)
        if strategy == PrefillStrategy.BLOCKED:
            return _skip(mapping, SkipCode.BLOCKED)
        if strategy == PrefillStrategy.STATIC:
            return _filled(mapping, copy.deepcopy(mapping.static_value))

        if strategy == PrefillStrategy.DIRECT:
            value = resolve_source(mapping.source_id, snapshot, history, mapping.from_stage)
            if is_empty(value):
                return _skip(mapping, SkipCode.SOURCE_NOT_READY)
            return _filled(mapping, value)

        if strategy == PrefillStrategy.CHAIN:
            field, fallback = chain_origin(mapping)
            value = lookup_history(history, field, mapping.from_stage)
            if is_empty(value) and fallback:
                value = resolve_source(fallback, snapshot, history, mapping.from_stage)
            if is_empty(value):
                return _skip(mapping, SkipCode.SOURCE_NOT_READY)
            return _filled(mapping, value)

        if strategy == PrefillStrategy.TRANSFORM:
            value = resolve_source(mapping.source_id, snapshot, history, mapping.from_stage)
            fn = self.registry.get(mapping.transform_key, DerivationKind.TRANSFORM)
            return self._derive(mapping, value, lambda: fn(
                copy.deepcopy(value), snapshot, copy.deepcopy(history),
            ))

        if strategy == PrefillStrategy.CALCULATION:
            fn = self.registry.get(mapping.transform_key, DerivationKind.CALCULATION)
            return self._derive(mapping, None, lambda: fn(snapshot, copy.deepcopy(history)))

        raise ValueError(f"Unhandled prefill strategy: {strategy}")

    def _derive(self, mapping: PrefillMapping, source_value, call) -> PrefillResult:
        try:
            derived = call()
        except Exception as e:
            logger.warning(
                "Derivation %s failed for %s (%s): %s",
                mapping.transform_key, mapping.target_id, mapping.target_field, e,
            )
            return _skip(mapping, SkipCode.DERIVATION_FAILED, f"{type(e).__name__}: {e}")

        if derived is None:
            if mapping.strategy == PrefillStrategy.TRANSFORM and is_empty(source_value):
                return _skip(mapping, SkipCode.SOURCE_NOT_READY)
            return _skip(mapping, SkipCode.DERIVATION_FAILED, f"{mapping.transform_key} returned no value")

        try:
            value = _coerce_to_field(mapping, derived)
        except (ValidationError, PydanticSerializationError) as e:
            logger.warning(
                "Derivation %s returned an unusable value for %s (%s): %r",
                mapping.transform_key, mapping.target_id, mapping.target_field, derived,
            )
            return _skip(
                mapping, SkipCode.DERIVATION_FAILED,
                f"{mapping.transform_key} returned {type(derived).__name__}, "
                f"not a valid {mapping.target_field}: {_first_error(e)}",
            )
        return _filled(mapping, value)


def _coerce_to_field(mapping: PrefillMapping, derived):
    """Validate a derived value against the destination stage's field type; returns its JSON form."""
    model = STAGE_DATA_MODELS[mapping.to_stage]
    record = model.model_validate({mapping.target_field: _to_plain(derived)})
    dumped = record.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return dumped[mapping.target_field]


def _first_error(e: Exception) -> str:
    if isinstance(e, ValidationError):
        err = e.errors()[0]
        return err["msg"]
    return str(e)


def _filled(mapping: PrefillMapping, value) -> PrefillResult:
    return PrefillResult(field=mapping.target_field, value=_to_plain(value), mapping=mapping)


def _skip(mapping: PrefillMapping, code: SkipCode, detail: str = "") -> PrefillResult:
    reason = SKIP_REASONS[code]
    if detail:
        reason = f"{reason}: {detail}"
    return PrefillResult(
        field=mapping.target_field,
        value=None,
        mapping=mapping,
        skipped=True,
        skip_code=code,
        skip_reason=reason,
    )


def build_resolver(registry: TransformRegistry = None, mappings=PREFILL_MAPPINGS) -> CascadeResolver:
    """Validated resolver. Raises at build time on any bad mapping or missing key."""
    registry = registry or build_default_registry()
    return CascadeResolver(MappingTable(mappings, registry), registry)


@lru_cache(maxsize=1)
def get_default_resolver() -> CascadeResolver:
    return build_resolver()


def resolve(from_stage, to_stage, snapshot: ScopingSnapshot, all_stage_data: Optional[dict]) -> CascadeOutcome:
    """Run the production prefill cascade with the default mapping table + registry."""
    return get_default_resolver().resolve(from_stage, to_stage, snapshot, all_stage_data)
