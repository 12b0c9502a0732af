"""
incentive_engines.aggregator -- Component evaluation and result assembly.

Responsibility:
    For a matched variant, resolve each enabled component's metrics,
    dispatch to the evaluator for its config type, record one
    CalculationStep per component, and sum the outputs into a
    CalculationResult.

Architecture position:
    Engines -- pure calculation layer.  Reads facts only through the
    FactSource handed in by the caller.

Invariants enforced:
    - ``total_payout`` is exactly the sum of step outputs.
    - Steps follow component ``order``; disabled components produce no step.
    - Dispatch is an exhaustive match over the closed set of config types.

Flags raised per step:
    zero_output      output is 0 and every input metric resolved to 0
    zero_goal        an input ratio (or KPI target) had a zero denominator
    below_threshold  percentage base under its minimum threshold
    payout_capped    output clipped by max_payout or the curve cap
    no_band_matched  lookup value below the first band or inside a gap

Audit relevance:
    Each step keeps resolved metrics (including the numerators and
    denominators behind ratios), matched labels and indices, rates, base
    amounts and contributing fact ids.  ``incentive_engines.narrative``
    renders the calculation sentence from these alone.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from incentive_engines.derivation import FactSource, MetricResolution, resolve_metrics
from incentive_engines.matrix import evaluate_matrix
from incentive_engines.percentage import (
    evaluate_conditional_percentage,
    evaluate_percentage,
)
from incentive_engines.tier import evaluate_tier
from incentive_engines.weighted_kpi import evaluate_weighted_kpi
from incentive_kernel.domain.facts import Entity
from incentive_kernel.domain.plan import (
    ConditionalPercentageConfig,
    MatrixLookupConfig,
    MetricDerivation,
    PercentageConfig,
    Plan,
    PlanComponent,
    TierLookupConfig,
    Variant,
    WeightedKpiConfig,
)
from incentive_kernel.domain.results import (
    CalculationResult,
    CalculationStep,
    LookupTrace,
    StepFlag,
)
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.aggregator")

_ZERO = Decimal("0")


def _audit_metrics(
    inputs: Sequence[str], derivations: Sequence[MetricDerivation]
) -> list[str]:
    """Inputs followed by every metric a ratio input was derived from."""
    by_name = {d.metric_name: d for d in derivations}
    seen: list[str] = []
    pending = list(inputs)
    while pending:
        name = pending.pop(0)
        if name in seen:
            continue
        seen.append(name)
        derivation = by_name.get(name)
        if derivation is not None and derivation.is_ratio:
            for ref in (derivation.numerator_metric, derivation.denominator_metric):
                if ref:
                    pending.append(ref)
    return seen


def evaluate_component(
    component: PlanComponent,
    resolution: MetricResolution,
    derivations: Sequence[MetricDerivation] = (),
) -> CalculationStep:
    """Evaluate one component against already-resolved metrics."""
    inputs = component.input_metrics
    flags: list[StepFlag] = []
    trace: LookupTrace

    match component.config:
        case TierLookupConfig() as cfg:
            value = resolution.get(cfg.metric)
            tier = evaluate_tier(value, cfg.tiers)
            output = tier.output
            if not tier.matched:
                flags.append(StepFlag.NO_BAND_MATCHED)
            trace = LookupTrace(
                table_type=component.component_type.value,
                inputs={cfg.metric: value},
                matched_tier_label=tier.matched_tier_label,
                tier_index=tier.tier_index,
                details={"metric_label": cfg.metric_label} if cfg.metric_label else {},
            )

        case MatrixLookupConfig() as cfg:
            row_value = resolution.get(cfg.row_metric)
            column_value = resolution.get(cfg.column_metric)
            cell = evaluate_matrix(row_value, column_value, cfg, component.name)
            output = cell.output
            if not cell.matched:
                flags.append(StepFlag.NO_BAND_MATCHED)
            details = {"row_metric": cfg.row_metric, "column_metric": cfg.column_metric}
            if cfg.row_label:
                details["row_label"] = cfg.row_label
            if cfg.column_label:
                details["column_label"] = cfg.column_label
            trace = LookupTrace(
                table_type=component.component_type.value,
                inputs={cfg.row_metric: row_value, cfg.column_metric: column_value},
                matched_row_label=cell.matched_row_label,
                matched_column_label=cell.matched_column_label,
                row_index=cell.row_index,
                column_index=cell.column_index,
                details=details,
            )

        case PercentageConfig() as cfg:
            base = resolution.get(cfg.applied_to)
            pct = evaluate_percentage(base, cfg)
            output = pct.output
            if pct.below_threshold:
                flags.append(StepFlag.BELOW_THRESHOLD)
            if pct.capped:
                flags.append(StepFlag.PAYOUT_CAPPED)
            details = {}
            if cfg.min_threshold is not None:
                details["min_threshold"] = cfg.min_threshold
            if cfg.max_payout is not None:
                details["max_payout"] = cfg.max_payout
            if pct.uncapped_output is not None:
                details["uncapped_output"] = pct.uncapped_output
            trace = LookupTrace(
                table_type=component.component_type.value,
                inputs={cfg.applied_to: base},
                rate=pct.rate,
                base_amount=base,
                details=details,
            )

        case ConditionalPercentageConfig() as cfg:
            base = resolution.get(cfg.applied_to)
            value = resolution.get(cfg.metric)
            cond = evaluate_conditional_percentage(base, value, cfg.conditions)
            output = cond.output
            if not cond.matched:
                flags.append(StepFlag.NO_BAND_MATCHED)
            trace = LookupTrace(
                table_type=component.component_type.value,
                inputs={cfg.applied_to: base, cfg.metric: value},
                matched_tier_label=cond.matched_label,
                tier_index=cond.condition_index,
                rate=cond.rate,
                base_amount=base,
            )

        case WeightedKpiConfig() as cfg:
            scorecard = evaluate_weighted_kpi(cfg, resolution.values)
            output = scorecard.output
            if scorecard.zero_goal:
                flags.append(StepFlag.ZERO_GOAL)
            if scorecard.capped:
                flags.append(StepFlag.PAYOUT_CAPPED)
            trace = LookupTrace(
                table_type=component.component_type.value,
                inputs={name: resolution.get(name) for name in inputs},
                base_amount=scorecard.target_bonus,
                details={
                    "weighted_attainment": scorecard.weighted_attainment,
                    "multiplier": scorecard.multiplier,
                    "kpis": [
                        {
                            "name": k.name,
                            "actual": k.actual,
                            "target": k.target,
                            "attainment": k.attainment,
                            "weight": k.weight,
                        }
                        for k in scorecard.kpis
                    ],
                },
            )

        case _:
            raise TypeError(
                f"Unsupported component config: {type(component.config).__name__}"
            )

    if any(name in resolution.zero_denominators for name in inputs):
        if StepFlag.ZERO_GOAL not in flags:
            flags.append(StepFlag.ZERO_GOAL)
    if output == 0 and all(resolution.get(name) == 0 for name in inputs):
        flags.insert(0, StepFlag.ZERO_OUTPUT)

    audit_names = _audit_metrics(inputs, derivations)
    return CalculationStep(
        component_id=component.component_id,
        component_name=component.name,
        component_type=component.component_type.value,
        order=component.order,
        resolved_metrics={name: resolution.get(name) for name in audit_names},
        lookup_trace=trace,
        output_value=output,
        warnings=resolution.warnings,
        flags=tuple(flags),
        source_fact_ids=resolution.source_ids(audit_names),
    )


def build_result(
    entity: Entity,
    period_id: str,
    plan: Plan,
    variant: Variant,
    steps: Sequence[CalculationStep],
    warnings: Sequence[str] = (),
) -> CalculationResult:
    """Sum step outputs into a CalculationResult."""
    total = sum((step.output_value for step in steps), _ZERO)
    return CalculationResult(
        entity_id=entity.entity_id,
        external_id=entity.external_id,
        period_id=period_id,
        rule_set_id=plan.plan_id,
        plan_version=plan.version,
        variant_id=variant.variant_id,
        components=tuple(steps),
        total_payout=total,
        warnings=tuple(warnings),
        currency=plan.currency,
    )


def calculate_variant(
    entity: Entity,
    period_id: str,
    plan: Plan,
    variant: Variant,
    fact_source: FactSource,
    warnings: Sequence[str] = (),
) -> CalculationResult:
    """Evaluate every enabled component of ``variant`` for one entity and period."""
    steps: list[CalculationStep] = []
    for component in variant.ordered_components:
        if not component.enabled:
            continue
        derivations = plan.derivations_for(component)
        resolution = resolve_metrics(entity.entity_id, period_id, derivations, fact_source)
        steps.append(evaluate_component(component, resolution, derivations))

    result = build_result(entity, period_id, plan, variant, steps, warnings)
    logger.debug(
        "entity_calculated",
        extra={
            "entity_id": entity.entity_id,
            "variant_id": variant.variant_id,
            "components": len(steps),
            "total_payout": str(result.total_payout),
        },
    )
    return result
