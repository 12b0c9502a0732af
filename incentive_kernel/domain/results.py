"""
incentive_kernel.domain.results -- Calculation audit trail and run outcome.

Responsibility:
    Immutable records produced by the engines: one CalculationStep per
    evaluated component, one CalculationResult per entity, one
    CalculationRunResult per orchestrator invocation.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - ``CalculationResult.total_payout`` equals the sum of its step outputs
      (built only by ``incentive_engines.aggregator.build_result``).
    - ``to_dict`` is the canonical serialisation; identical results always
      serialise to identical dicts, which is what makes a rerun
      byte-identical and fingerprintable.

Audit relevance:
    Each step keeps the resolved metric values, matched tier/row/column
    labels and indices, rates, base amounts and contributing fact ids, so
    the calculation sentence can be rebuilt without recomputation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from incentive_kernel.utils.hashing import hash_payload


class StepFlag(str, Enum):
    """Degenerate-result markers for downstream review."""

    ZERO_OUTPUT = "zero_output"  # zero because every input resolved to zero
    ZERO_GOAL = "zero_goal"  # an input ratio had a zero denominator
    BELOW_THRESHOLD = "below_threshold"  # percentage base under min_threshold
    PAYOUT_CAPPED = "payout_capped"  # output clipped by max_payout or curve cap
    NO_BAND_MATCHED = "no_band_matched"  # value below first band or in a gap


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    NO_ELIGIBLE_ENTITIES = "no_eligible_entities"


def _plain(value: Any) -> Any:
    """Render Decimals as fixed-point strings, recursively."""
    if isinstance(value, Decimal):
        if not value.is_finite():
            return str(value)
        return format(value.normalize(), "f")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class LookupTrace:
    """What an evaluator looked at and what it matched."""

    table_type: str
    inputs: dict[str, Decimal] = field(default_factory=dict)
    matched_tier_label: str | None = None
    matched_row_label: str | None = None
    matched_column_label: str | None = None
    tier_index: int | None = None
    row_index: int | None = None
    column_index: int | None = None
    rate: Decimal | None = None
    base_amount: Decimal | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"table_type": self.table_type, "inputs": _plain(self.inputs)}
        for name in (
            "matched_tier_label",
            "matched_row_label",
            "matched_column_label",
            "tier_index",
            "row_index",
            "column_index",
            "rate",
            "base_amount",
        ):
            value = getattr(self, name)
            if value is not None:
                data[name] = _plain(value)
        if self.details:
            data["details"] = _plain(self.details)
        return data


@dataclass(frozen=True)
class CalculationStep:
    """Audit unit: one evaluated component."""

    component_id: str
    component_name: str
    component_type: str
    order: int
    resolved_metrics: dict[str, Decimal]
    lookup_trace: LookupTrace
    output_value: Decimal
    warnings: tuple[str, ...] = ()
    flags: tuple[StepFlag, ...] = ()
    source_fact_ids: tuple[str, ...] = ()

    def has_flag(self, flag: StepFlag) -> bool:
        return flag in self.flags

    def to_dict(self) -> dict[str, Any]:
        return {
            "component_id": self.component_id,
            "component_name": self.component_name,
            "component_type": self.component_type,
            "order": self.order,
            "resolved_metrics": _plain(self.resolved_metrics),
            "lookup_trace": self.lookup_trace.to_dict(),
            "output_value": _plain(self.output_value),
            "warnings": list(self.warnings),
            "flags": [f.value for f in self.flags],
            "source_fact_ids": list(self.source_fact_ids),
        }


@dataclass(frozen=True)
class CalculationResult:
    """Payout of one entity for one period under one rule set."""

    entity_id: str
    period_id: str
    rule_set_id: str
    variant_id: str
    components: tuple[CalculationStep, ...]
    total_payout: Decimal
    warnings: tuple[str, ...] = ()
    external_id: str = ""
    currency: str = "USD"
    plan_version: int = 1

    @property
    def flags(self) -> frozenset[StepFlag]:
        return frozenset(f for step in self.components for f in step.flags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "external_id": self.external_id,
            "period_id": self.period_id,
            "rule_set_id": self.rule_set_id,
            "plan_version": self.plan_version,
            "variant_id": self.variant_id,
            "currency": self.currency,
            "components": [step.to_dict() for step in self.components],
            "total_payout": _plain(self.total_payout),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class EligibilitySkip:
    """An entity excluded from the run, with the reason recorded."""

    entity_id: str
    reason: str


@dataclass(frozen=True)
class CalculationRunResult:
    """Outcome of one orchestrator invocation."""

    rule_set_id: str
    period_id: str
    total_payout: Decimal
    entity_count: int
    results: tuple[CalculationResult, ...]
    skipped: tuple[EligibilitySkip, ...] = ()
    warnings: tuple[str, ...] = ()
    outcome: RunOutcome = RunOutcome.COMPLETED

    @property
    def run_fingerprint(self) -> str:
        """SHA-256 over the canonical serialisation of every result."""
        return hash_payload([r.to_dict() for r in self.results])

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_set_id": self.rule_set_id,
            "period_id": self.period_id,
            "outcome": self.outcome.value,
            "total_payout": _plain(self.total_payout),
            "entity_count": self.entity_count,
            "results": [r.to_dict() for r in self.results],
            "skipped": [{"entity_id": s.entity_id, "reason": s.reason} for s in self.skipped],
            "warnings": list(self.warnings),
        }
