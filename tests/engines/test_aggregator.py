"""
Tests for component evaluation and result assembly.

Covers:
- One step per enabled component, in component order
- total_payout equals the sum of step outputs
- Audit trail: resolved metrics include ratio operands, source fact ids,
  matched labels and indices
- Flags: zero_output, zero_goal, no_band_matched, below_threshold,
  payout_capped
"""

from decimal import Decimal

from incentive_engines.aggregator import calculate_variant, evaluate_component
from incentive_engines.derivation import MetricResolution
from incentive_kernel.domain.facts import FactRow
from incentive_kernel.domain.plan import (
    ConditionalPercentageConfig,
    DerivationOperation,
    MetricDerivation,
    PercentageConfig,
    PlanComponent,
)
from incentive_kernel.domain.results import StepFlag
from tests.helpers import (
    INSURANCE_CONDITIONS,
    CountingFactSource,
    make_plan,
    matrix_component,
    store_facts,
    tier_component,
)

INSURANCE = PlanComponent(
    component_id="seguros",
    name="Venta de Seguros",
    config=ConditionalPercentageConfig(
        applied_to="insurance_sales",
        metric="store_sales_attainment",
        conditions=INSURANCE_CONDITIONS,
    ),
    order=3,
    derivations=(
        MetricDerivation(
            "insurance_sales",
            DerivationOperation.SUM,
            source_pattern="individual_sales",
            source_field="amount",
        ),
    ),
)


def certified_facts(entity_id="store-017"):
    return store_facts(
        entity_id,
        store_sales=170000,
        store_sales_target=160000,
        optical_sales=175000,
        optical_sales_target=150000,
    ) + [
        FactRow("ins-1", entity_id, "individual_sales", {"amount": 2000}, "2024-03"),
    ]


class TestCalculateVariant:
    def test_steps_and_total(self, store_entity):
        plan = make_plan(
            [INSURANCE, tier_component(order=2), matrix_component(order=1)]
        )
        variant = plan.variants[0]

        result = calculate_variant(
            store_entity, "2024-03", plan, variant, CountingFactSource(certified_facts())
        )

        assert [s.component_name for s in result.components] == [
            "Venta Óptica",
            "Venta de Tienda",
            "Venta de Seguros",
        ]
        assert [s.output_value for s in result.components] == [
            Decimal("1800"),
            Decimal("300"),
            Decimal("100.00"),
        ]
        assert result.total_payout == Decimal("2200.00")
        assert result.entity_id == "store-017"
        assert result.external_id == "MX-017"
        assert result.variant_id == "default"
        assert result.plan_version == plan.version

    def test_disabled_component_produces_no_step(self, store_entity):
        disabled = PlanComponent(
            component_id="off",
            name="Off",
            config=tier_component().config,
            enabled=False,
        )
        plan = make_plan([tier_component(), disabled])

        result = calculate_variant(
            store_entity, "2024-03", plan, plan.variants[0], CountingFactSource(certified_facts())
        )

        assert [s.component_id for s in result.components] == ["venta-de-tienda"]

    def test_selection_warnings_are_carried(self, store_entity):
        plan = make_plan()

        result = calculate_variant(
            store_entity,
            "2024-03",
            plan,
            plan.variants[0],
            CountingFactSource([]),
            warnings=["eligible for 2 variants"],
        )

        assert result.warnings == ("eligible for 2 variants",)


class TestAuditTrail:
    def test_ratio_operands_and_sources_are_recorded(self, store_entity):
        plan = make_plan([tier_component()])

        step = calculate_variant(
            store_entity, "2024-03", plan, plan.variants[0], CountingFactSource(certified_facts())
        ).components[0]

        assert step.resolved_metrics == {
            "store_sales_attainment": Decimal("106.25"),
            "store_sales": Decimal("170000"),
            "store_sales_target": Decimal("160000"),
        }
        assert step.source_fact_ids == ("store-017-goals", "store-017-store")
        assert step.lookup_trace.matched_tier_label == "105%-109.99%"
        assert step.lookup_trace.tier_index == 2

    def test_matrix_trace(self, store_entity):
        plan = make_plan([matrix_component()])

        step = calculate_variant(
            store_entity, "2024-03", plan, plan.variants[0], CountingFactSource(certified_facts())
        ).components[0]

        trace = step.lookup_trace
        assert (trace.row_index, trace.column_index) == (3, 4)
        assert trace.matched_column_label == "$120k-$180k"
        assert trace.inputs["optical_sales"] == Decimal("175000")


class TestFlags:
    def test_zero_goal(self, store_entity):
        plan = make_plan([tier_component()])
        facts = store_facts("store-017", store_sales=170000)

        step = calculate_variant(
            store_entity, "2024-03", plan, plan.variants[0], CountingFactSource(facts)
        ).components[0]

        assert step.output_value == Decimal("0")
        assert step.has_flag(StepFlag.ZERO_GOAL)
        assert step.has_flag(StepFlag.ZERO_OUTPUT)

    def test_zero_output_not_raised_when_inputs_are_nonzero(self, store_entity):
        plan = make_plan([tier_component()])
        facts = store_facts("store-017", store_sales=90000, store_sales_target=100000)

        step = calculate_variant(
            store_entity, "2024-03", plan, plan.variants[0], CountingFactSource(facts)
        ).components[0]

        assert step.output_value == Decimal("0")
        assert step.flags == ()

    def test_no_band_matched(self):
        resolution = MetricResolution(values={"store_sales_attainment": Decimal("-3")})

        step = evaluate_component(tier_component(), resolution)

        assert step.flags == (StepFlag.NO_BAND_MATCHED,)

    def test_percentage_threshold_and_cap(self):
        component = PlanComponent(
            component_id="pct",
            name="Servicios",
            config=PercentageConfig(
                "warranty_sales",
                Decimal("0.10"),
                min_threshold=Decimal("100"),
                max_payout=Decimal("50"),
            ),
        )

        low = evaluate_component(
            component, MetricResolution(values={"warranty_sales": Decimal("99")})
        )
        high = evaluate_component(
            component, MetricResolution(values={"warranty_sales": Decimal("1000")})
        )

        assert low.flags == (StepFlag.BELOW_THRESHOLD,)
        assert high.flags == (StepFlag.PAYOUT_CAPPED,)
        assert high.output_value == Decimal("50")
        assert high.lookup_trace.details["uncapped_output"] == Decimal("100.00")
