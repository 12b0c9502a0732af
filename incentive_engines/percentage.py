"""
incentive_engines.percentage -- Percentage and conditional percentage evaluators.

Responsibility:
    ``evaluate_percentage``: ``base * rate``, with an optional minimum base
    below which nothing is paid and an optional payout cap.
    ``evaluate_conditional_percentage``: pick the rate from a condition
    table using the shared band scan on a second metric, then
    ``base * rate``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Failure modes:
    - None raised.  An unmatched condition yields rate 0 and output 0.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from incentive_engines.bands import scan_band
from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plan import PercentageConfig, RateCondition


@dataclass(frozen=True)
class PercentageOutcome:
    output: Decimal
    rate: Decimal
    below_threshold: bool = False
    capped: bool = False
    uncapped_output: Decimal | None = None


@dataclass(frozen=True)
class ConditionalOutcome:
    output: Decimal
    rate: Decimal
    matched_label: str | None = None
    condition_index: int | None = None

    @property
    def matched(self) -> bool:
        return self.condition_index is not None


@traced_engine("percentage", "1.0", fingerprint_fields=("base",))
def evaluate_percentage(base: Decimal, config: PercentageConfig) -> PercentageOutcome:
    if config.min_threshold is not None and base < config.min_threshold:
        return PercentageOutcome(
            output=Decimal("0"), rate=config.rate, below_threshold=True
        )

    output = base * config.rate
    if config.max_payout is not None and output > config.max_payout:
        return PercentageOutcome(
            output=config.max_payout,
            rate=config.rate,
            capped=True,
            uncapped_output=output,
        )
    return PercentageOutcome(output=output, rate=config.rate)


@traced_engine(
    "conditional_percentage", "1.0", fingerprint_fields=("base", "value")
)
def evaluate_conditional_percentage(
    base: Decimal,
    value: Decimal,
    conditions: Sequence[RateCondition],
) -> ConditionalOutcome:
    index = scan_band(value, conditions)
    if index is None:
        return ConditionalOutcome(output=Decimal("0"), rate=Decimal("0"))
    condition = conditions[index]
    return ConditionalOutcome(
        output=base * condition.rate,
        rate=condition.rate,
        matched_label=condition.display_label,
        condition_index=index,
    )
