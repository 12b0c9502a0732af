"""
Plan Validator (``incentive_config.validator``).

Responsibility
--------------
Structural checks over a ``Plan`` before it is evaluated: band ordering,
gaps and overlaps, matrix dimensions, empty plans and variants, rate and
KPI sanity, and the metric derivation graph.

Architecture position
---------------------
**Config layer** -- pure function over the plan model.  Called at design
time by tooling and by the calculation orchestrator before any
per-entity work.

Invariants enforced
-------------------
Errors (the plan must not be evaluated):
* empty plan, empty variant, duplicate variant id
* tier / band ``min`` lower than the previous ``min``; band with
  ``min >= max``
* matrix row count != row bands, or a row length != column bands
* negative percentage or condition rate
* weighted KPI without KPIs, curve points, or a usable target
* derivation defects: duplicate metric, ratio without both operands,
  reference to an undefined metric, circular ratios, row aggregation
  without a source pattern, passthrough without a field

Warnings (evaluation proceeds; attached to the run for review):
* gap between consecutive bands beyond ``gap_epsilon``; overlapping bands
* conditions not ascending by ``min``
* empty lookup table
* KPI weights not summing to 100
* component metric with no derivation (always resolves to 0)
* variants with identical eligibility, or a catch-all variant followed by
  variants it makes unreachable

Failure modes
-------------
None raised.  Every finding is returned as a ``ValidationIssue``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from incentive_kernel.domain.plan import (
    BonusBasis,
    ConditionalPercentageConfig,
    DerivationOperation,
    MatrixLookupConfig,
    MetricDerivation,
    PercentageConfig,
    Plan,
    PlanComponent,
    TierLookupConfig,
    WeightedKpiConfig,
)

DEFAULT_GAP_EPSILON = Decimal("0.01")
_HUNDRED = Decimal("100")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    severity: Severity
    code: str
    message: str
    component_name: str = ""
    variant_name: str = ""

    def __str__(self) -> str:
        where = "/".join(p for p in (self.variant_name, self.component_name) if p)
        prefix = f"[{where}] " if where else ""
        return f"{self.severity.value.upper()} {self.code}: {prefix}{self.message}"


@dataclass
class PlanValidationResult:
    """
    Result of plan validation.

    ``is_valid`` is True only when there are no error-severity issues.
    """

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add(self, issue: ValidationIssue) -> None:
        if issue not in self.issues:
            self.issues.append(issue)

    def add_error(self, code: str, message: str, component_name: str = "", variant_name: str = "") -> None:
        self.add(ValidationIssue(Severity.ERROR, code, message, component_name, variant_name))

    def add_warning(self, code: str, message: str, component_name: str = "", variant_name: str = "") -> None:
        self.add(ValidationIssue(Severity.WARNING, code, message, component_name, variant_name))


def validate_plan(plan: Plan, gap_epsilon: Decimal = DEFAULT_GAP_EPSILON) -> PlanValidationResult:
    """
    Validate a plan.

    Postconditions:
        - Returns a ``PlanValidationResult``; ``is_valid`` is True when
          the plan may be evaluated.
    """
    result = PlanValidationResult()

    if not plan.variants:
        result.add_error("EMPTY_PLAN", f"plan '{plan.name}' has no variants")
        return result

    _validate_variant_ids(plan, result)
    _validate_eligibility_overlap(plan, result)
    _validate_derivations(plan.derivations, result)

    for variant in plan.variants:
        if not variant.components:
            result.add_error(
                "EMPTY_VARIANT",
                "variant has no components",
                variant_name=variant.name,
            )
            continue
        for component in variant.components:
            derivations = plan.derivations_for(component)
            if component.derivations:
                _validate_derivations(derivations, result, component.name, variant.name)
            _validate_component(component, variant.name, gap_epsilon, result)
            _validate_metric_coverage(component, derivations, variant.name, result)

    return result


def _validate_variant_ids(plan: Plan, result: PlanValidationResult) -> None:
    seen: set[str] = set()
    for variant in plan.variants:
        if variant.variant_id in seen:
            result.add_error(
                "DUPLICATE_VARIANT",
                f"variant id '{variant.variant_id}' is used more than once",
                variant_name=variant.name,
            )
        seen.add(variant.variant_id)


def _eligibility_key(variant) -> frozenset:
    return frozenset(
        (c.attribute, frozenset(str(v).lower() for v in c.values))
        for c in variant.eligibility
    )


def _validate_eligibility_overlap(plan: Plan, result: PlanValidationResult) -> None:
    seen: dict[frozenset, str] = {}
    for index, variant in enumerate(plan.variants):
        key = _eligibility_key(variant)
        if key in seen:
            result.add_warning(
                "DUPLICATE_ELIGIBILITY",
                f"same eligibility as variant '{seen[key]}'; only the first is ever selected",
                variant_name=variant.name,
            )
        else:
            seen[key] = variant.name
        if not variant.eligibility and index < len(plan.variants) - 1:
            result.add_warning(
                "VARIANT_SHADOWS_LATER",
                "variant has no eligibility constraints and precedes other variants, "
                "which can never be selected",
                variant_name=variant.name,
            )


def _validate_bands(
    bands: Sequence,
    kind: str,
    gap_epsilon: Decimal,
    result: PlanValidationResult,
    component_name: str,
    variant_name: str,
    order_is_error: bool = True,
) -> None:
    """Ordering, empty-range, gap and overlap checks for one band list."""
    for index, band in enumerate(bands):
        if band.min >= band.max:
            result.add_error(
                "BAND_EMPTY_RANGE",
                f"{kind} {index} has min {band.min} >= max {band.max}",
                component_name,
                variant_name,
            )
        if index == 0:
            continue
        previous = bands[index - 1]
        if band.min < previous.min:
            message = f"{kind} {index} min {band.min} is below {kind} {index - 1} min {previous.min}"
            if order_is_error:
                result.add_error(f"{kind.upper()}_ORDER", message, component_name, variant_name)
            else:
                result.add_warning(f"{kind.upper()}_ORDER", message, component_name, variant_name)
            continue
        if previous.max.is_finite() and band.min - previous.max > gap_epsilon:
            result.add_warning(
                f"{kind.upper()}_GAP",
                f"gap between {kind} {index - 1} (max {previous.max}) and "
                f"{kind} {index} (min {band.min}); values in between pay 0",
                component_name,
                variant_name,
            )
        elif band.min < previous.max:
            result.add_warning(
                f"{kind.upper()}_OVERLAP",
                f"{kind} {index} (min {band.min}) overlaps {kind} {index - 1} "
                f"(max {previous.max}); the earlier {kind} wins",
                component_name,
                variant_name,
            )


def _validate_component(
    component: PlanComponent,
    variant_name: str,
    gap_epsilon: Decimal,
    result: PlanValidationResult,
) -> None:
    name = component.name

    match component.config:
        case TierLookupConfig(tiers=tiers):
            if not tiers:
                result.add_warning("EMPTY_TABLE", "tier table is empty; always pays 0", name, variant_name)
            _validate_bands(tiers, "tier", gap_epsilon, result, name, variant_name)

        case MatrixLookupConfig() as cfg:
            if not cfg.row_bands or not cfg.column_bands:
                result.add_warning("EMPTY_TABLE", "matrix has no row or column bands; always pays 0", name, variant_name)
            _validate_bands(cfg.row_bands, "row_band", gap_epsilon, result, name, variant_name)
            _validate_bands(cfg.column_bands, "column_band", gap_epsilon, result, name, variant_name)
            if len(cfg.values) != len(cfg.row_bands):
                result.add_error(
                    "MATRIX_ROW_COUNT",
                    f"values has {len(cfg.values)} row(s) but there are "
                    f"{len(cfg.row_bands)} row band(s)",
                    name,
                    variant_name,
                )
            for row_index, row in enumerate(cfg.values):
                if len(row) != len(cfg.column_bands):
                    result.add_error(
                        "MATRIX_COLUMN_COUNT",
                        f"values row {row_index} has {len(row)} cell(s) but there are "
                        f"{len(cfg.column_bands)} column band(s)",
                        name,
                        variant_name,
                    )

        case PercentageConfig() as cfg:
            if cfg.rate < 0:
                result.add_error("NEGATIVE_RATE", f"rate {cfg.rate} is negative", name, variant_name)
            if cfg.max_payout is not None and cfg.max_payout < 0:
                result.add_error("NEGATIVE_CAP", f"max_payout {cfg.max_payout} is negative", name, variant_name)

        case ConditionalPercentageConfig(conditions=conditions):
            if not conditions:
                result.add_warning("EMPTY_TABLE", "condition table is empty; always pays 0", name, variant_name)
            for index, condition in enumerate(conditions):
                if condition.rate < 0:
                    result.add_error(
                        "NEGATIVE_RATE",
                        f"condition {index} rate {condition.rate} is negative",
                        name,
                        variant_name,
                    )
            _validate_bands(
                conditions, "condition", gap_epsilon, result, name, variant_name,
                order_is_error=False,
            )

        case WeightedKpiConfig() as cfg:
            _validate_weighted_kpi(cfg, name, variant_name, result)


def _validate_weighted_kpi(
    cfg: WeightedKpiConfig,
    name: str,
    variant_name: str,
    result: PlanValidationResult,
) -> None:
    if not cfg.kpis:
        result.add_error("NO_KPIS", "weighted KPI component lists no KPIs", name, variant_name)
    for kpi in cfg.kpis:
        if kpi.target_metric is None and (kpi.target is None or kpi.target <= 0):
            result.add_error(
                "KPI_TARGET",
                f"KPI '{kpi.name}' needs a positive target or a target_metric",
                name,
                variant_name,
            )
    total_weight = sum((k.weight for k in cfg.kpis), Decimal("0"))
    if cfg.kpis and total_weight != _HUNDRED:
        result.add_warning(
            "KPI_WEIGHTS",
            f"KPI weights sum to {total_weight}, not 100",
            name,
            variant_name,
        )
    if not cfg.curve.points:
        result.add_error("CURVE_EMPTY", "multiplier curve has no points", name, variant_name)
    if cfg.bonus_basis == BonusBasis.SALARY_MULTIPLIER and not cfg.salary_metric:
        result.add_error(
            "SALARY_METRIC_MISSING",
            "salary_multiplier bonus needs a salary_metric",
            name,
            variant_name,
        )


def _validate_derivations(
    derivations: Sequence[MetricDerivation],
    result: PlanValidationResult,
    component_name: str = "",
    variant_name: str = "",
) -> None:
    names: set[str] = set()
    for derivation in derivations:
        if derivation.metric_name in names:
            result.add_error(
                "DERIVATION_DUPLICATE",
                f"metric '{derivation.metric_name}' is derived more than once",
                component_name,
                variant_name,
            )
        names.add(derivation.metric_name)

    ratios: dict[str, MetricDerivation] = {}
    for d in derivations:
        if d.operation == DerivationOperation.RATIO:
            ratios[d.metric_name] = d
            if not d.numerator_metric or not d.denominator_metric:
                result.add_error(
                    "RATIO_INCOMPLETE",
                    f"ratio '{d.metric_name}' needs numerator_metric and denominator_metric",
                    component_name,
                    variant_name,
                )
                continue
            for ref in (d.numerator_metric, d.denominator_metric):
                if ref not in names:
                    result.add_error(
                        "DERIVATION_UNDEFINED_REF",
                        f"ratio '{d.metric_name}' references undefined metric '{ref}'",
                        component_name,
                        variant_name,
                    )
        else:
            if not d.source_pattern:
                result.add_error(
                    "DERIVATION_NO_SOURCE",
                    f"{d.operation.value} '{d.metric_name}' has no source_pattern",
                    component_name,
                    variant_name,
                )
            if d.operation == DerivationOperation.PASSTHROUGH and not d.source_field:
                result.add_error(
                    "PASSTHROUGH_NO_FIELD",
                    f"passthrough '{d.metric_name}' has no source_field",
                    component_name,
                    variant_name,
                )

    for cycle_start in _find_ratio_cycles(ratios):
        result.add_error(
            "DERIVATION_CYCLE",
            f"ratio '{cycle_start}' depends on itself",
            component_name,
            variant_name,
        )


def _find_ratio_cycles(ratios: dict[str, MetricDerivation]) -> list[str]:
    """Names of ratios that reach themselves through other ratios."""
    cyclic: list[str] = []
    for start in ratios:
        stack = [start]
        visited: set[str] = set()
        while stack:
            name = stack.pop()
            derivation = ratios.get(name)
            if derivation is None:
                continue
            for ref in (derivation.numerator_metric, derivation.denominator_metric):
                if ref == start:
                    cyclic.append(start)
                    stack.clear()
                    break
                if ref and ref not in visited:
                    visited.add(ref)
                    stack.append(ref)
    return cyclic


def _validate_metric_coverage(
    component: PlanComponent,
    derivations: Sequence[MetricDerivation],
    variant_name: str,
    result: PlanValidationResult,
) -> None:
    derived = {d.metric_name for d in derivations}
    for metric in component.input_metrics:
        if metric not in derived:
            result.add_warning(
                "METRIC_UNDERIVED",
                f"metric '{metric}' has no derivation and always resolves to 0",
                component.name,
                variant_name,
            )
