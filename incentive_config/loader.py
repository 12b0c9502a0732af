"""
Plan and Dataset Loader (``incentive_config.loader``).

Responsibility
--------------
Parses YAML plan definitions into the frozen ``incentive_kernel.domain.plan``
types, and YAML datasets (entities, committed facts, rule set assignments)
into ``Dataset`` instances for local runs and tests.  The same
``parse_plan`` reads plan documents stored in the ``rule_sets`` table.

Architecture position
---------------------
**Config layer** -- may import kernel domain types; no dependency on
engines or services.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every numeric field becomes a ``Decimal``.  Floats from YAML are
  converted through ``repr`` so ``0.05`` stays exactly ``0.05``.
* A missing, null, ``.inf`` or ``"infinity"`` band maximum means an
  unbounded band.
* Structural soundness (ordering, gaps, matrix dimensions) is NOT checked
  here; that is ``incentive_config.validator``'s job.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown component type / operation, or non-numeric thresholds
  -> ``ValueError``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from incentive_kernel.domain.facts import Entity, FactRow
from incentive_kernel.domain.plan import (
    INFINITY,
    Band,
    BonusBasis,
    ComponentConfig,
    ComponentType,
    ConditionalPercentageConfig,
    CurvePoint,
    DerivationOperation,
    EligibilityConstraint,
    FactFilter,
    FilterOperator,
    KpiDefinition,
    MatrixLookupConfig,
    MetricDerivation,
    MultiplierCurve,
    PercentageConfig,
    Plan,
    PlanComponent,
    PlanStatus,
    RateCondition,
    Tier,
    TierLookupConfig,
    Variant,
    WeightedKpiConfig,
)

_INFINITY_WORDS = frozenset({".inf", "inf", "+inf", "infinity", "+infinity"})
_NEGATIVE_INFINITY_WORDS = frozenset({"-.inf", "-inf", "-infinity"})


def load_yaml_file(path: Path | str) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    """
    Parse a YAML scalar into a Decimal.

    Raises:
        ValueError: if ``value`` is missing, boolean, or not numeric.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field}: expected a number, got {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if math.isinf(value) and value > 0:
            return INFINITY
        if not math.isfinite(value):
            raise ValueError(f"{field}: expected a finite number, got {value!r}")
        return Decimal(repr(value))
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if text.lower() in _INFINITY_WORDS:
            return INFINITY
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"{field}: cannot parse number from {value!r}") from None
        if parsed.is_nan():
            raise ValueError(f"{field}: NaN is not a valid number")
        return parsed
    raise ValueError(f"{field}: expected a number, got {type(value).__name__}")


def _optional_decimal(value: Any, field: str) -> Decimal | None:
    return None if value is None else parse_decimal(value, field)


def _upper_bound(data: dict[str, Any], field: str) -> Decimal:
    raw = data.get("max")
    return INFINITY if raw is None else parse_decimal(raw, field)


def _lower_bound(data: dict[str, Any], field: str) -> Decimal:
    """A missing, null or negative-infinite ``min`` leaves the band open below."""
    raw = data.get("min")
    if raw is None:
        return -INFINITY
    if isinstance(raw, float) and math.isinf(raw) and raw < 0:
        return -INFINITY
    if isinstance(raw, str) and raw.strip().lower() in _NEGATIVE_INFINITY_WORDS:
        return -INFINITY
    return parse_decimal(raw, field)


def parse_band(data: dict[str, Any]) -> Band:
    return Band(
        min=_lower_bound(data, "band.min"),
        max=_upper_bound(data, "band.max"),
        label=str(data.get("label", "")),
    )


def parse_tier(data: dict[str, Any]) -> Tier:
    return Tier(
        min=_lower_bound(data, "tier.min"),
        max=_upper_bound(data, "tier.max"),
        value=parse_decimal(data["value"], "tier.value"),
        label=str(data.get("label", "")),
    )


def parse_condition(data: dict[str, Any]) -> RateCondition:
    return RateCondition(
        min=_lower_bound(data, "condition.min"),
        max=_upper_bound(data, "condition.max"),
        rate=parse_decimal(data["rate"], "condition.rate"),
        label=str(data.get("label", "")),
    )


def parse_filter(data: dict[str, Any]) -> FactFilter:
    return FactFilter(
        field=data["field"],
        operator=FilterOperator(data.get("operator", "eq")),
        value=data["value"],
    )


def parse_derivation(data: dict[str, Any]) -> MetricDerivation:
    """
    Parse a ``MetricDerivation`` from a dict.

    Raises:
        KeyError: if ``metric_name`` or ``operation`` is missing.
        ValueError: if ``operation`` is unknown.
    """
    return MetricDerivation(
        metric_name=data["metric_name"],
        operation=DerivationOperation(data["operation"]),
        source_pattern=data.get("source_pattern"),
        source_field=data.get("source_field"),
        numerator_metric=data.get("numerator_metric"),
        denominator_metric=data.get("denominator_metric"),
        scale_factor=parse_decimal(data.get("scale_factor", 1), "scale_factor"),
        period_scoped=bool(data.get("period_scoped", True)),
        filters=tuple(parse_filter(f) for f in data.get("filters", ())),
    )


def _parse_weighted_kpi(data: dict[str, Any]) -> WeightedKpiConfig:
    kpis = tuple(
        KpiDefinition(
            name=k["name"],
            metric=k["metric"],
            weight=parse_decimal(k["weight"], "kpi.weight"),
            target=_optional_decimal(k.get("target"), "kpi.target"),
            target_metric=k.get("target_metric"),
        )
        for k in data.get("kpis", ())
    )
    curve_data = data.get("curve", {})
    cap = curve_data.get("cap")
    curve = MultiplierCurve(
        points=tuple(
            CurvePoint(
                attainment=parse_decimal(p["attainment"], "curve.attainment"),
                payout=parse_decimal(p["payout"], "curve.payout"),
            )
            for p in curve_data.get("points", ())
        ),
        floor=parse_decimal(curve_data.get("floor", 0), "curve.floor"),
        cap=INFINITY if cap is None else parse_decimal(cap, "curve.cap"),
    )
    return WeightedKpiConfig(
        kpis=kpis,
        curve=curve,
        target_bonus=parse_decimal(data["target_bonus"], "target_bonus"),
        bonus_basis=BonusBasis(data.get("bonus_basis", "fixed")),
        salary_metric=data.get("salary_metric"),
    )


def parse_component_config(component_type: ComponentType, data: dict[str, Any]) -> ComponentConfig:
    """
    Build the config for ``component_type`` from its ``config`` mapping.

    Raises:
        KeyError: if required keys for the type are missing.
    """
    match component_type:
        case ComponentType.TIER_LOOKUP:
            return TierLookupConfig(
                metric=data["metric"],
                tiers=tuple(parse_tier(t) for t in data.get("tiers", ())),
                metric_label=str(data.get("metric_label", "")),
            )
        case ComponentType.MATRIX_LOOKUP:
            return MatrixLookupConfig(
                row_metric=data["row_metric"],
                column_metric=data["column_metric"],
                row_bands=tuple(parse_band(b) for b in data.get("row_bands", ())),
                column_bands=tuple(parse_band(b) for b in data.get("column_bands", ())),
                values=tuple(
                    tuple(parse_decimal(v, "matrix.values") for v in row)
                    for row in data.get("values", ())
                ),
                row_label=str(data.get("row_label", "")),
                column_label=str(data.get("column_label", "")),
            )
        case ComponentType.PERCENTAGE:
            return PercentageConfig(
                applied_to=data["applied_to"],
                rate=parse_decimal(data["rate"], "rate"),
                min_threshold=_optional_decimal(data.get("min_threshold"), "min_threshold"),
                max_payout=_optional_decimal(data.get("max_payout"), "max_payout"),
            )
        case ComponentType.CONDITIONAL_PERCENTAGE:
            return ConditionalPercentageConfig(
                applied_to=data["applied_to"],
                metric=data["metric"],
                conditions=tuple(parse_condition(c) for c in data.get("conditions", ())),
            )
        case ComponentType.WEIGHTED_KPI:
            return _parse_weighted_kpi(data)
    raise ValueError(f"Unsupported component type: {component_type!r}")


def parse_component(data: dict[str, Any], position: int = 0) -> PlanComponent:
    """
    Parse a ``PlanComponent``.

    ``order`` defaults to the component's position in its variant.
    """
    component_type = ComponentType(data["type"])
    return PlanComponent(
        component_id=str(data.get("component_id") or data["name"]),
        name=data["name"],
        config=parse_component_config(component_type, data.get("config", {})),
        order=int(data.get("order", position)),
        enabled=bool(data.get("enabled", True)),
        description=data.get("description", ""),
        derivations=tuple(parse_derivation(d) for d in data.get("derivations", ())),
    )


def parse_eligibility(data: Any) -> tuple[EligibilityConstraint, ...]:
    """
    Parse an eligibility predicate.

    Accepts a mapping (``{role: [manager, lead], is_certified: true}``) or a
    list of ``{attribute, values}`` / ``{attribute, value}`` dicts.
    """
    if not data:
        return ()
    if isinstance(data, dict):
        items = [{"attribute": k, "values": v} for k, v in data.items()]
    else:
        items = list(data)

    constraints = []
    for item in items:
        raw = item["values"] if "values" in item else item["value"]
        values = tuple(raw) if isinstance(raw, (list, tuple)) else (raw,)
        if not values:
            raise ValueError(f"eligibility on '{item['attribute']}' lists no values")
        constraints.append(EligibilityConstraint(attribute=item["attribute"], values=values))
    return tuple(constraints)


def parse_variant(data: dict[str, Any]) -> Variant:
    return Variant(
        variant_id=str(data["variant_id"]),
        name=data.get("name", str(data["variant_id"])),
        components=tuple(
            parse_component(c, position)
            for position, c in enumerate(data.get("components", ()))
        ),
        eligibility=parse_eligibility(data.get("eligibility")),
    )


def parse_plan(data: dict[str, Any]) -> Plan:
    """
    Parse a ``Plan`` from a dict.

    Raises:
        KeyError: if ``plan_id`` or ``name`` is missing.
        ValueError: on unknown enum values or non-numeric thresholds.
    """
    return Plan(
        plan_id=str(data["plan_id"]),
        name=data["name"],
        status=PlanStatus(data.get("status", "active")),
        version=int(data.get("version", 1)),
        currency=data.get("currency", "USD"),
        derivations=tuple(parse_derivation(d) for d in data.get("derivations", ())),
        variants=tuple(parse_variant(v) for v in data.get("variants", ())),
    )


def load_plan(path: Path | str) -> Plan:
    """Load and parse a plan YAML file."""
    return parse_plan(load_yaml_file(path))


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dataset:
    """Entities, facts and assignments for one tenant."""

    tenant_id: str
    entities: tuple[Entity, ...] = ()
    facts: tuple[FactRow, ...] = ()
    assignments: tuple[tuple[str, str], ...] = ()  # (rule_set_id, entity_id)


def parse_entity(data: dict[str, Any]) -> Entity:
    return Entity(
        entity_id=str(data["entity_id"]),
        external_id=str(data.get("external_id", "")),
        attributes=dict(data.get("attributes", {})),
        display_name=data.get("display_name", ""),
    )


def parse_fact(data: dict[str, Any], position: int = 0) -> FactRow:
    period = data.get("period_id")
    return FactRow(
        fact_id=str(data.get("fact_id") or f"fact-{position + 1}"),
        entity_id=str(data["entity_id"]),
        period_id=None if period is None else str(period),
        data_type=data["data_type"],
        fields=dict(data.get("fields", {})),
    )


def parse_dataset(data: dict[str, Any]) -> Dataset:
    """
    Parse a ``Dataset`` from a dict.

    Assignments name one ``entity_id`` or a list of ``entity_ids``.
    """
    assignments: list[tuple[str, str]] = []
    for item in data.get("assignments", ()):
        entity_ids = item.get("entity_ids") or [item["entity_id"]]
        for entity_id in entity_ids:
            assignments.append((str(item["rule_set_id"]), str(entity_id)))

    return Dataset(
        tenant_id=str(data.get("tenant_id", "default")),
        entities=tuple(parse_entity(e) for e in data.get("entities", ())),
        facts=tuple(parse_fact(f, i) for i, f in enumerate(data.get("facts", ()))),
        assignments=tuple(assignments),
    )


def load_dataset(path: Path | str) -> Dataset:
    """Load and parse a dataset YAML file."""
    return parse_dataset(load_yaml_file(path))
