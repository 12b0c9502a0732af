"""
incentive_engines.weighted_kpi -- Weighted KPI scorecard evaluator.

Responsibility:
    Combine several KPI attainments into one weighted attainment, turn it
    into a payout multiplier through a piecewise-linear curve, and apply
    the multiplier to the target bonus.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Units:
    Attainments, curve points, floor and cap are ratios (1 = 100%).
    KPI weights are percentages (40 = 40%).

Curve rule:
    - weighted attainment below ``floor``: multiplier 0
    - between two points (inclusive): linear interpolation
    - above the last point: ``min(last.payout, cap)``
    - at or above floor but below the first point: first point's payout

Failure modes:
    - None raised.  A KPI whose target resolves to 0 contributes 0 and is
      reported through ``zero_goal``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plan import (
    BonusBasis,
    CurvePoint,
    KpiDefinition,
    MultiplierCurve,
    WeightedKpiConfig,
)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class KpiAttainment:
    name: str
    actual: Decimal
    target: Decimal
    attainment: Decimal
    weight: Decimal

    @property
    def contribution(self) -> Decimal:
        return self.attainment * self.weight / _HUNDRED


@dataclass(frozen=True)
class WeightedKpiOutcome:
    output: Decimal
    weighted_attainment: Decimal
    multiplier: Decimal
    target_bonus: Decimal
    kpis: tuple[KpiAttainment, ...]
    capped: bool = False
    zero_goal: bool = False


def _target_for(kpi: KpiDefinition, metrics: Mapping[str, Decimal]) -> Decimal:
    if kpi.target_metric:
        return metrics.get(kpi.target_metric, _ZERO)
    return kpi.target if kpi.target is not None else _ZERO


def multiplier_from_curve(attainment: Decimal, curve: MultiplierCurve) -> tuple[Decimal, bool]:
    """Return ``(multiplier, capped)`` for a weighted attainment."""
    points: list[CurvePoint] = sorted(curve.points, key=lambda p: p.attainment)
    if not points or attainment < curve.floor:
        return _ZERO, False

    for lower, upper in zip(points, points[1:]):
        if lower.attainment <= attainment <= upper.attainment:
            span = upper.attainment - lower.attainment
            if span == 0:
                return upper.payout, False
            ratio = (attainment - lower.attainment) / span
            return lower.payout + ratio * (upper.payout - lower.payout), False

    last = points[-1]
    if attainment > last.attainment:
        if curve.cap < last.payout:
            return curve.cap, True
        return last.payout, False
    return points[0].payout, False


@traced_engine("weighted_kpi", "1.0", fingerprint_fields=("metrics",))
def evaluate_weighted_kpi(
    config: WeightedKpiConfig,
    metrics: Mapping[str, Decimal],
) -> WeightedKpiOutcome:
    attainments: list[KpiAttainment] = []
    zero_goal = False
    for kpi in config.kpis:
        actual = metrics.get(kpi.metric, _ZERO)
        target = _target_for(kpi, metrics)
        if target == 0:
            zero_goal = True
            attainment = _ZERO
        else:
            attainment = actual / target
        attainments.append(
            KpiAttainment(
                name=kpi.name,
                actual=actual,
                target=target,
                attainment=attainment,
                weight=kpi.weight,
            )
        )

    weighted = sum((a.contribution for a in attainments), _ZERO)
    multiplier, capped = multiplier_from_curve(weighted, config.curve)

    if config.bonus_basis == BonusBasis.SALARY_MULTIPLIER:
        salary = metrics.get(config.salary_metric or "", _ZERO)
        target_bonus = salary * config.target_bonus
    else:
        target_bonus = config.target_bonus

    return WeightedKpiOutcome(
        output=target_bonus * multiplier,
        weighted_attainment=weighted,
        multiplier=multiplier,
        target_bonus=target_bonus,
        kpis=tuple(attainments),
        capped=capped,
        zero_goal=zero_goal,
    )
