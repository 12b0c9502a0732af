"""
Tests for calculation sentences.

The sentence is built from the recorded step only; these tests build steps
the same way the aggregator does and check the wording reviewers see.
"""

from decimal import Decimal

from incentive_engines.aggregator import evaluate_component
from incentive_engines.derivation import MetricResolution
from incentive_engines.narrative import describe_result, describe_step
from incentive_kernel.domain.plan import (
    Band,
    ConditionalPercentageConfig,
    MatrixLookupConfig,
    PercentageConfig,
    PlanComponent,
)
from incentive_kernel.domain.results import CalculationResult
from tests.helpers import INSURANCE_CONDITIONS, matrix_component, tier_component


def step_for(component, **values):
    resolution = MetricResolution(values={k: Decimal(v) for k, v in values.items()})
    return evaluate_component(component, resolution)


class TestDescribeStep:
    def test_tier(self):
        step = step_for(tier_component(), store_sales_attainment="106.25")

        assert describe_step(step) == (
            "Venta de Tienda: store_sales_attainment 106.25 matched tier "
            "'105%-109.99%' = 300.00"
        )

    def test_matrix(self):
        step = step_for(
            matrix_component(), optical_sales_attainment="116.67", optical_sales="175000"
        )

        assert describe_step(step) == (
            "Venta Óptica: optical_sales_attainment 116.67 in row '100%-150%', "
            "optical_sales 175,000 in column '$120k-$180k' = 1,800.00"
        )

    def test_matrix_with_one_metric_on_both_axes(self):
        component = PlanComponent(
            component_id="volumen",
            name="Volumen",
            config=MatrixLookupConfig(
                row_metric="store_sales",
                column_metric="store_sales",
                row_bands=(Band(Decimal("0"), label="all"),),
                column_bands=(Band(Decimal("0"), label="any"),),
                values=((Decimal("250"),),),
            ),
        )

        step = step_for(component, store_sales="1200")

        assert describe_step(step) == (
            "Volumen: store_sales 1,200 in row 'all', "
            "store_sales 1,200 in column 'any' = 250.00"
        )

    def test_conditional_percentage(self):
        component = PlanComponent(
            component_id="seguros",
            name="Venta de Seguros",
            config=ConditionalPercentageConfig(
                "insurance_sales", "store_sales_attainment", INSURANCE_CONDITIONS
            ),
        )

        step = step_for(component, insurance_sales="2000", store_sales_attainment="95")

        assert describe_step(step) == (
            "Venta de Seguros: store_sales_attainment 95 in '<100%' selects 3%; "
            "2,000.00 x 3% = 60.00"
        )

    def test_percentage(self):
        component = PlanComponent(
            component_id="servicios",
            name="Venta de Servicios",
            config=PercentageConfig("warranty_sales", Decimal("0.04")),
        )

        step = step_for(component, warranty_sales="1500")

        assert describe_step(step) == "Venta de Servicios: 1,500.00 x 4% = 60.00"

    def test_flags_are_appended(self):
        step = step_for(tier_component(), store_sales_attainment="0")

        assert describe_step(step).endswith("= 0.00 [zero_output]")


class TestDescribeResult:
    def test_total_line(self):
        step = step_for(tier_component(), store_sales_attainment="112")
        result = CalculationResult(
            entity_id="store-017",
            period_id="2024-03",
            rule_set_id="optica-2024",
            variant_id="certified",
            components=(step,),
            total_payout=step.output_value,
            currency="MXN",
        )

        assert describe_result(result) == [
            "Venta de Tienda: store_sales_attainment 112 matched tier '>=110%' = 500.00",
            "Total: 500.00 MXN",
        ]
