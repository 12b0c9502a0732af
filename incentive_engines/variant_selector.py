"""
incentive_engines.variant_selector -- Match an entity to one plan variant.

Responsibility:
    Evaluate each variant's eligibility predicate (a conjunction of
    attribute equality / membership constraints) against an entity's
    attributes and pick the variant the entity is paid under.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Variant order in the plan is part of its contract: the first eligible
      variant always wins, so reruns never pick differently.
    - A variant with no constraints matches every entity.

Failure modes:
    - No eligible variant: ``EligibilityFailure`` is returned (a recorded
      skip, not an error).
    - Several eligible variants: under ``VariantMatchPolicy.FIRST_MATCH`` a
      warning is attached to the match; under ``STRICT``
      AmbiguousVariantError is raised.

Audit relevance:
    Emits INCENTIVE_VARIANT_TRACE for each selection with every eligible
    candidate and the one chosen.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from incentive_kernel.domain.facts import Entity
from incentive_kernel.domain.plan import EligibilityConstraint, Variant
from incentive_kernel.exceptions import AmbiguousVariantError
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.variant_selector")


class VariantMatchPolicy(str, Enum):
    """What to do when more than one variant is eligible."""

    FIRST_MATCH = "first_match"
    STRICT = "strict"


@dataclass(frozen=True)
class VariantMatch:
    variant: Variant
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class EligibilityFailure:
    entity_id: str
    reason: str


def _normalize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def _attribute(attributes: Mapping[str, Any], path: str) -> Any:
    """Attribute value by dot-path (``store.region``), or None."""
    if path in attributes:
        return attributes[path]
    current: Any = attributes
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return None
    return current


def constraint_holds(constraint: EligibilityConstraint, attributes: Mapping[str, Any]) -> bool:
    actual = _attribute(attributes, constraint.attribute)
    if actual is None:
        return False
    candidates = actual if isinstance(actual, (list, tuple, set, frozenset)) else (actual,)
    allowed = {_normalize(v) for v in constraint.values}
    return any(_normalize(c) in allowed for c in candidates)


def is_eligible(variant: Variant, entity: Entity) -> bool:
    return all(constraint_holds(c, entity.attributes) for c in variant.eligibility)


def select_variant(
    entity: Entity,
    variants: Sequence[Variant],
    policy: VariantMatchPolicy = VariantMatchPolicy.FIRST_MATCH,
) -> VariantMatch | EligibilityFailure:
    """Pick the variant ``entity`` is paid under."""
    eligible = [v for v in variants if is_eligible(v, entity)]

    if not eligible:
        logger.info(
            "variant_no_match",
            extra={
                "entity_id": entity.entity_id,
                "variants_checked": [v.variant_id for v in variants],
            },
        )
        return EligibilityFailure(
            entity_id=entity.entity_id,
            reason=(
                f"no eligible variant among {len(variants)} "
                f"({', '.join(v.variant_id for v in variants)})"
            ),
        )

    selected = eligible[0]
    warnings: tuple[str, ...] = ()
    if len(eligible) > 1:
        ids = [v.variant_id for v in eligible]
        if policy == VariantMatchPolicy.STRICT:
            logger.warning(
                "variant_match_ambiguous",
                extra={"entity_id": entity.entity_id, "matching_variants": ids},
            )
            raise AmbiguousVariantError(entity.entity_id, ids)
        warnings = (
            f"entity {entity.entity_id} is eligible for {len(ids)} variants "
            f"({', '.join(ids)}); using '{selected.variant_id}' by plan order",
        )

    logger.debug(
        "INCENTIVE_VARIANT_TRACE",
        extra={
            "trace_type": "INCENTIVE_VARIANT_TRACE",
            "entity_id": entity.entity_id,
            "eligible_variants": [v.variant_id for v in eligible],
            "selected_variant": selected.variant_id,
            "resolution_method": "first_match" if len(eligible) > 1 else "unique",
        },
    )
    return VariantMatch(variant=selected, warnings=warnings)
