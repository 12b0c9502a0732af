"""
Tests for structural plan validation.

Covers:
- Empty plans and variants, duplicate variant ids, shadowed variants
- Band ordering (error) vs gaps and overlaps (warnings), gap epsilon
- Matrix dimension checks
- Percentage, condition and weighted KPI sanity
- Derivation graph: duplicates, incomplete ratios, undefined refs, cycles
- Issue rendering and the is_valid contract
"""

from decimal import Decimal

import pytest

from incentive_config.validator import Severity, ValidationIssue, validate_plan
from incentive_kernel.domain.plan import (
    INFINITY,
    BonusBasis,
    ConditionalPercentageConfig,
    CurvePoint,
    DerivationOperation,
    KpiDefinition,
    MetricDerivation,
    MultiplierCurve,
    PercentageConfig,
    Plan,
    PlanComponent,
    RateCondition,
    Tier,
    Variant,
    WeightedKpiConfig,
)
from tests.helpers import (
    CERTIFIED_GRID,
    INSURANCE_CONDITIONS,
    attainment_derivations,
    make_plan,
    make_variant,
    matrix_component,
    tier_component,
)


def codes(result, severity=None):
    return {i.code for i in result.issues if severity is None or i.severity == severity}


def tiers(*bounds):
    return [
        Tier(Decimal(lo), INFINITY if hi is None else Decimal(hi), Decimal("100"), f"t{n}")
        for n, (lo, hi) in enumerate(bounds)
    ]


def percentage(rate="0.04", max_payout=None):
    return PlanComponent(
        component_id="servicios",
        name="Venta de Servicios",
        config=PercentageConfig(
            applied_to="store_sales",
            rate=Decimal(rate),
            max_payout=None if max_payout is None else Decimal(max_payout),
        ),
    )


def kpi_component(kpis, points=((1, 1),), bonus_basis=BonusBasis.FIXED, salary_metric=None):
    return PlanComponent(
        component_id="scorecard",
        name="Scorecard",
        config=WeightedKpiConfig(
            kpis=tuple(kpis),
            curve=MultiplierCurve(
                points=tuple(CurvePoint(Decimal(a), Decimal(p)) for a, p in points)
            ),
            target_bonus=Decimal("1000"),
            bonus_basis=bonus_basis,
            salary_metric=salary_metric,
        ),
    )


class TestCleanPlans:
    def test_default_plan_has_no_issues(self):
        result = validate_plan(make_plan([tier_component(), matrix_component(order=2)]))

        assert result.issues == []
        assert result.is_valid

    def test_sample_style_adjacent_bounds(self):
        plan = make_plan([tier_component(tiers=tiers(("0", "99.99"), ("100", None)))])

        assert validate_plan(plan).issues == []


class TestPlanStructure:
    def test_empty_plan(self):
        result = validate_plan(Plan(plan_id="p", name="Empty", variants=()))

        assert codes(result) == {"EMPTY_PLAN"}
        assert not result.is_valid

    def test_empty_variant(self):
        plan = make_plan(variants=[Variant(variant_id="v", name="V", components=())])

        assert "EMPTY_VARIANT" in codes(validate_plan(plan), Severity.ERROR)

    def test_duplicate_variant_id(self):
        plan = make_plan(
            variants=[
                make_variant("certified", [tier_component()], is_certified=True),
                make_variant("certified", [tier_component()], is_certified=False),
            ]
        )

        assert codes(validate_plan(plan)) == {"DUPLICATE_VARIANT"}

    def test_duplicate_eligibility_is_warning(self):
        plan = make_plan(
            variants=[
                make_variant("a", [tier_component()], region="cdmx"),
                make_variant("b", [tier_component()], region="CDMX"),
            ]
        )
        result = validate_plan(plan)

        assert codes(result) == {"DUPLICATE_ELIGIBILITY"}
        assert result.is_valid

    def test_catch_all_before_other_variants(self):
        plan = make_plan(
            variants=[
                make_variant("everyone", [tier_component()]),
                make_variant("certified", [tier_component()], is_certified=True),
            ]
        )

        assert codes(validate_plan(plan), Severity.WARNING) == {"VARIANT_SHADOWS_LATER"}

    def test_catch_all_last_is_fine(self):
        plan = make_plan(
            variants=[
                make_variant("certified", [tier_component()], is_certified=True),
                make_variant("everyone", [tier_component()]),
            ]
        )

        assert validate_plan(plan).issues == []


class TestBands:
    def test_out_of_order_tiers_are_errors(self):
        plan = make_plan([tier_component(tiers=tiers(("100", "200"), ("0", "100")))])

        assert codes(validate_plan(plan), Severity.ERROR) == {"TIER_ORDER"}

    def test_empty_range(self):
        plan = make_plan([tier_component(tiers=tiers(("10", "10")))])

        assert codes(validate_plan(plan)) == {"BAND_EMPTY_RANGE"}

    def test_gap_is_warning(self):
        plan = make_plan([tier_component(tiers=tiers(("0", "100"), ("105", None)))])
        result = validate_plan(plan)

        assert codes(result) == {"TIER_GAP"}
        assert result.is_valid

    def test_gap_within_epsilon(self):
        plan = make_plan([tier_component(tiers=tiers(("0", "100"), ("105", None)))])

        assert validate_plan(plan, gap_epsilon=Decimal("5")).issues == []

    def test_overlap_is_warning(self):
        plan = make_plan([tier_component(tiers=tiers(("0", "100"), ("90", None)))])

        assert codes(validate_plan(plan)) == {"TIER_OVERLAP"}

    def test_empty_table(self):
        plan = make_plan([tier_component(tiers=())])

        assert codes(validate_plan(plan), Severity.WARNING) == {"EMPTY_TABLE"}

    def test_issue_names_variant_and_component(self):
        plan = make_plan([tier_component(tiers=tiers(("0", "100"), ("90", None)))])
        (issue,) = validate_plan(plan).issues

        assert issue.component_name == "Venta de Tienda"
        assert issue.variant_name == "Default"
        assert str(issue).startswith("WARNING TIER_OVERLAP: [Default/Venta de Tienda] ")


class TestMatrix:
    def test_row_count_mismatch(self):
        plan = make_plan([matrix_component(values=CERTIFIED_GRID[:4])])

        assert codes(validate_plan(plan), Severity.ERROR) == {"MATRIX_ROW_COUNT"}

    def test_column_count_mismatch(self):
        grid = CERTIFIED_GRID[:3] + (CERTIFIED_GRID[3][:5],) + CERTIFIED_GRID[4:]
        result = validate_plan(make_plan([matrix_component(values=grid)]))

        (issue,) = result.errors
        assert issue.code == "MATRIX_COLUMN_COUNT"
        assert "row 3" in issue.message


class TestRates:
    def test_negative_rate_and_cap(self):
        plan = make_plan([percentage(rate="-0.01", max_payout="-5")])

        assert codes(validate_plan(plan), Severity.ERROR) == {"NEGATIVE_RATE", "NEGATIVE_CAP"}

    def test_conditions_out_of_order_is_warning(self):
        conditions = tuple(reversed(INSURANCE_CONDITIONS))
        component = PlanComponent(
            component_id="seguros",
            name="Venta de Seguros",
            config=ConditionalPercentageConfig(
                applied_to="store_sales", metric="store_sales_attainment", conditions=conditions
            ),
        )
        result = validate_plan(make_plan([component]))

        assert codes(result) == {"CONDITION_ORDER"}
        assert result.is_valid

    def test_negative_condition_rate(self):
        component = PlanComponent(
            component_id="seguros",
            name="Venta de Seguros",
            config=ConditionalPercentageConfig(
                applied_to="store_sales",
                metric="store_sales_attainment",
                conditions=(RateCondition(Decimal("0"), INFINITY, Decimal("-0.02")),),
            ),
        )

        assert codes(validate_plan(make_plan([component]))) == {"NEGATIVE_RATE"}


class TestWeightedKpi:
    def test_well_formed(self):
        component = kpi_component(
            [
                KpiDefinition("Store", "store_sales", Decimal("60"), target_metric="store_sales_target"),
                KpiDefinition("Optical", "optical_sales", Decimal("40"), target=Decimal("150000")),
            ]
        )

        assert validate_plan(make_plan([component])).issues == []

    @pytest.mark.parametrize(
        "component, code",
        [
            (kpi_component([]), "NO_KPIS"),
            (kpi_component([KpiDefinition("Store", "store_sales", Decimal("100"))]), "KPI_TARGET"),
            (
                kpi_component(
                    [KpiDefinition("Store", "store_sales", Decimal("100"), target=Decimal("1"))],
                    points=(),
                ),
                "CURVE_EMPTY",
            ),
            (
                kpi_component(
                    [KpiDefinition("Store", "store_sales", Decimal("100"), target=Decimal("1"))],
                    bonus_basis=BonusBasis.SALARY_MULTIPLIER,
                ),
                "SALARY_METRIC_MISSING",
            ),
        ],
    )
    def test_errors(self, component, code):
        assert code in codes(validate_plan(make_plan([component])), Severity.ERROR)

    def test_weights_not_summing_to_hundred(self):
        component = kpi_component(
            [KpiDefinition("Store", "store_sales", Decimal("80"), target=Decimal("1"))]
        )
        result = validate_plan(make_plan([component]))

        assert codes(result) == {"KPI_WEIGHTS"}
        assert result.is_valid


class TestDerivations:
    def test_duplicate_metric(self):
        derivations = attainment_derivations("store_sales") + attainment_derivations("store_sales")[:1]

        assert "DERIVATION_DUPLICATE" in codes(validate_plan(make_plan(derivations=derivations)))

    def test_incomplete_ratio(self):
        derivations = attainment_derivations("store_sales")[:2] + (
            MetricDerivation(
                "store_sales_attainment", DerivationOperation.RATIO, numerator_metric="store_sales"
            ),
        )

        assert codes(validate_plan(make_plan(derivations=derivations))) == {"RATIO_INCOMPLETE"}

    def test_undefined_reference(self):
        derivations = attainment_derivations("store_sales")[:1] + (
            MetricDerivation(
                "store_sales_attainment",
                DerivationOperation.RATIO,
                numerator_metric="store_sales",
                denominator_metric="store_sales_goal",
            ),
        )
        result = validate_plan(make_plan(derivations=derivations))

        assert codes(result) == {"DERIVATION_UNDEFINED_REF"}
        assert "store_sales_goal" in result.errors[0].message

    def test_row_aggregation_needs_source(self):
        derivations = (
            MetricDerivation("store_sales_attainment", DerivationOperation.SUM, source_field="amount"),
        )

        assert codes(validate_plan(make_plan(derivations=derivations))) == {"DERIVATION_NO_SOURCE"}

    def test_passthrough_needs_field(self):
        derivations = (
            MetricDerivation(
                "store_sales_attainment", DerivationOperation.PASSTHROUGH, source_pattern="goals"
            ),
        )

        assert codes(validate_plan(make_plan(derivations=derivations))) == {"PASSTHROUGH_NO_FIELD"}

    def test_cycle(self):
        derivations = (
            MetricDerivation("base", DerivationOperation.SUM, source_pattern="sales", source_field="amount"),
            MetricDerivation(
                "store_sales_attainment",
                DerivationOperation.RATIO,
                numerator_metric="other",
                denominator_metric="base",
            ),
            MetricDerivation(
                "other",
                DerivationOperation.RATIO,
                numerator_metric="store_sales_attainment",
                denominator_metric="base",
            ),
        )
        result = validate_plan(make_plan(derivations=derivations))

        cycles = [i for i in result.errors if i.code == "DERIVATION_CYCLE"]
        assert {i.message for i in cycles} == {
            "ratio 'store_sales_attainment' depends on itself",
            "ratio 'other' depends on itself",
        }

    def test_underived_metric_is_warning(self):
        plan = make_plan([tier_component(metric="basket_size")])
        result = validate_plan(plan)

        assert codes(result) == {"METRIC_UNDERIVED"}
        assert result.is_valid

    def test_component_level_derivations_are_checked(self):
        component = PlanComponent(
            component_id="c",
            name="Local",
            config=tier_component().config,
            derivations=(
                MetricDerivation("store_sales_attainment", DerivationOperation.COUNT),
            ),
        )
        (issue,) = validate_plan(make_plan([component])).errors

        assert issue.code == "DERIVATION_NO_SOURCE"
        assert issue.component_name == "Local"


def test_issue_without_location():
    issue = ValidationIssue(Severity.ERROR, "EMPTY_PLAN", "plan 'x' has no variants")

    assert str(issue) == "ERROR EMPTY_PLAN: plan 'x' has no variants"
