"""
Plan, entity and fact builders shared by the incentive engine tests.

The tables mirror the optica sample plan: store sales tiers, the
attainment x volume matrix with its certified grid, and the insurance
condition table.
"""

from decimal import Decimal

from incentive_kernel.domain.facts import FactRow
from incentive_kernel.domain.plan import (
    INFINITY,
    Band,
    DerivationOperation,
    EligibilityConstraint,
    MatrixLookupConfig,
    MetricDerivation,
    Plan,
    PlanComponent,
    RateCondition,
    Tier,
    TierLookupConfig,
    Variant,
)


STORE_SALES_TIERS = (
    Tier(Decimal("0"), Decimal("100"), Decimal("0"), "<100%"),
    Tier(Decimal("100"), Decimal("105"), Decimal("150"), "100%-104.99%"),
    Tier(Decimal("105"), Decimal("110"), Decimal("300"), "105%-109.99%"),
    Tier(Decimal("110"), INFINITY, Decimal("500"), ">=110%"),
)

ATTAINMENT_BANDS = (
    Band(Decimal("0"), Decimal("80"), "<80%"),
    Band(Decimal("80"), Decimal("90"), "80%-90%"),
    Band(Decimal("90"), Decimal("100"), "90%-100%"),
    Band(Decimal("100"), Decimal("150"), "100%-150%"),
    Band(Decimal("150"), INFINITY, "150%+"),
)

VOLUME_BANDS = (
    Band(Decimal("0"), Decimal("60000"), "<$60k"),
    Band(Decimal("60000"), Decimal("80000"), "$60k-$80k"),
    Band(Decimal("80000"), Decimal("100000"), "$80k-$100k"),
    Band(Decimal("100000"), Decimal("120000"), "$100k-$120k"),
    Band(Decimal("120000"), Decimal("180000"), "$120k-$180k"),
    Band(Decimal("180000"), INFINITY, "$180k+"),
)

CERTIFIED_GRID = tuple(
    tuple(Decimal(v) for v in row)
    for row in (
        (0, 0, 0, 0, 500, 800),
        (200, 250, 300, 500, 800, 1100),
        (300, 400, 500, 800, 1100, 1500),
        (800, 950, 1100, 1500, 1800, 2500),
        (1000, 1150, 1300, 1800, 2200, 3000),
    )
)

INSURANCE_CONDITIONS = (
    RateCondition(Decimal("0"), Decimal("100"), Decimal("0.03"), "<100%"),
    RateCondition(Decimal("100"), INFINITY, Decimal("0.05"), ">=100%"),
)


def attainment_derivations(prefix: str) -> tuple[MetricDerivation, ...]:
    """``{prefix}`` sum, ``{prefix}_target`` passthrough and ``{prefix}_attainment`` ratio."""
    return (
        MetricDerivation(
            metric_name=prefix,
            operation=DerivationOperation.SUM,
            source_pattern=prefix,
            source_field="amount",
        ),
        MetricDerivation(
            metric_name=f"{prefix}_target",
            operation=DerivationOperation.PASSTHROUGH,
            source_pattern="goals",
            source_field=f"{prefix}_target",
            period_scoped=False,
        ),
        MetricDerivation(
            metric_name=f"{prefix}_attainment",
            operation=DerivationOperation.RATIO,
            numerator_metric=prefix,
            denominator_metric=f"{prefix}_target",
            scale_factor=Decimal("100"),
        ),
    )


def tier_component(
    metric: str = "store_sales_attainment",
    tiers=STORE_SALES_TIERS,
    name: str = "Venta de Tienda",
    order: int = 1,
) -> PlanComponent:
    return PlanComponent(
        component_id=name.lower().replace(" ", "-"),
        name=name,
        config=TierLookupConfig(metric=metric, tiers=tuple(tiers)),
        order=order,
    )


def matrix_component(values=CERTIFIED_GRID, order: int = 1) -> PlanComponent:
    return PlanComponent(
        component_id="venta-optica",
        name="Venta Óptica",
        config=MatrixLookupConfig(
            row_metric="optical_sales_attainment",
            column_metric="optical_sales",
            row_bands=ATTAINMENT_BANDS,
            column_bands=VOLUME_BANDS,
            values=values,
        ),
        order=order,
    )


def make_plan(
    components=None,
    plan_id: str = "plan-1",
    derivations=None,
    variants=None,
    **kwargs,
) -> Plan:
    if variants is None:
        variants = (
            Variant(
                variant_id="default",
                name="Default",
                components=tuple(components or (tier_component(),)),
            ),
        )
    if derivations is None:
        derivations = attainment_derivations("store_sales") + attainment_derivations(
            "optical_sales"
        )
    return Plan(
        plan_id=plan_id,
        name=kwargs.pop("name", "Test Plan"),
        variants=tuple(variants),
        derivations=tuple(derivations),
        **kwargs,
    )


def make_variant(variant_id: str, components, **eligibility) -> Variant:
    return Variant(
        variant_id=variant_id,
        name=variant_id.replace("_", " ").title(),
        components=tuple(components),
        eligibility=tuple(
            EligibilityConstraint(attribute=k, values=tuple(v) if isinstance(v, (list, tuple)) else (v,))
            for k, v in eligibility.items()
        ),
    )


def store_facts(
    entity_id: str,
    period_id: str = "2024-03",
    store_sales=None,
    store_sales_target=None,
    optical_sales=None,
    optical_sales_target=None,
) -> list[FactRow]:
    """Fact rows for one store; None means "no row"."""
    facts: list[FactRow] = []
    goals = {}
    if store_sales_target is not None:
        goals["store_sales_target"] = store_sales_target
    if optical_sales_target is not None:
        goals["optical_sales_target"] = optical_sales_target
    if goals:
        facts.append(FactRow(f"{entity_id}-goals", entity_id, "goals", goals))
    if store_sales is not None:
        facts.append(
            FactRow(f"{entity_id}-store", entity_id, "store_sales", {"amount": store_sales}, period_id)
        )
    if optical_sales is not None:
        facts.append(
            FactRow(f"{entity_id}-optical", entity_id, "optical_sales", {"amount": optical_sales}, period_id)
        )
    return facts


class CountingFactSource:
    """FactSource over a list of rows that records every query."""

    def __init__(self, facts):
        self.facts = list(facts)
        self.queries: list[tuple[str, str | None, str]] = []

    def get_fact_rows(self, entity_id, period_id, data_type):
        self.queries.append((entity_id, period_id, data_type))
        return [
            f
            for f in self.facts
            if f.entity_id == entity_id
            and f.data_type == data_type
            and (period_id is None or f.period_id == period_id)
        ]

