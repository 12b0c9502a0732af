"""
incentive_engines.derivation -- Metric derivation engine.

Responsibility:
    Resolve the named metrics a component reads (actuals, targets,
    attainment, ...) for one entity and one period, from raw committed
    fact rows.

Architecture position:
    Engines -- pure calculation layer.  Fact rows are read through the
    ``FactSource`` protocol; the engine never writes, caches across calls,
    or touches the store directly.

Algorithm:
    1. Split derivations into non-ratio and ratio.
    2. Non-ratio: read rows for ``(entity, period, data_type ==
       source_pattern)``; the period is dropped for ``period_scoped=False``
       derivations.  Apply filters, then reduce:
         sum          -- total of ``source_field`` (row count when no field)
         count        -- number of rows
         passthrough  -- ``source_field`` of the first row
    3. Ratio: ``numerator / denominator * scale_factor`` in dependency
       order, so a ratio may read another ratio.  A zero denominator
       yields 0 and is recorded in ``zero_denominators``.
    4. No rows means 0, never an error.

Invariants enforced:
    - Results depend only on the rows returned during this call.
    - Never returns NaN or Infinity.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.facts import FactRow
from incentive_kernel.domain.plan import (
    DerivationOperation,
    FactFilter,
    FilterOperator,
    MetricDerivation,
)
from incentive_kernel.logging_config import get_logger

logger = get_logger("engines.derivation")

_ZERO = Decimal("0")


class FactSource(Protocol):
    def get_fact_rows(
        self, entity_id: str, period_id: str | None, data_type: str
    ) -> Sequence[FactRow]: ...


@dataclass(frozen=True)
class MetricResolution:
    """Resolved metrics plus what the aggregator needs for flags and audit."""

    values: dict[str, Decimal]
    zero_denominators: frozenset[str] = frozenset()
    sources: dict[str, tuple[str, ...]] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    def get(self, metric: str) -> Decimal:
        return self.values.get(metric, _ZERO)

    def source_ids(self, metrics: Iterable[str]) -> tuple[str, ...]:
        ids: set[str] = set()
        for metric in metrics:
            ids.update(self.sources.get(metric, ()))
        return tuple(sorted(ids))


def to_decimal(value: Any) -> Decimal | None:
    """Numeric fact value as Decimal, or None when it is not a finite number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


def _matches(row: FactRow, fact_filter: FactFilter) -> bool:
    actual = row.fields.get(fact_filter.field)
    expected = fact_filter.value

    match fact_filter.operator:
        case FilterOperator.EQ:
            return _equal(actual, expected)
        case FilterOperator.NEQ:
            return not _equal(actual, expected)
        case FilterOperator.IN:
            options = expected if isinstance(expected, (list, tuple, set, frozenset)) else (expected,)
            return any(_equal(actual, option) for option in options)

    left = to_decimal(actual)
    right = to_decimal(expected)
    if left is None or right is None:
        return False
    match fact_filter.operator:
        case FilterOperator.GT:
            return left > right
        case FilterOperator.GTE:
            return left >= right
        case FilterOperator.LT:
            return left < right
        case FilterOperator.LTE:
            return left <= right
    return False


def _equal(actual: Any, expected: Any) -> bool:
    left, right = to_decimal(actual), to_decimal(expected)
    if left is not None and right is not None:
        return left == right
    return str(actual).strip().lower() == str(expected).strip().lower()


def _reduce(
    derivation: MetricDerivation,
    rows: Sequence[FactRow],
    warnings: list[str],
) -> Decimal:
    match derivation.operation:
        case DerivationOperation.COUNT:
            return Decimal(len(rows))
        case DerivationOperation.SUM:
            if not derivation.source_field:
                return Decimal(len(rows))
            total = _ZERO
            for row in rows:
                raw = row.fields.get(derivation.source_field)
                if raw is None:
                    continue
                amount = to_decimal(raw)
                if amount is None:
                    warnings.append(
                        f"{derivation.metric_name}: ignored non-numeric "
                        f"{derivation.source_field}={raw!r} in fact {row.fact_id}"
                    )
                    continue
                total += amount
            return total
        case DerivationOperation.PASSTHROUGH:
            if not rows:
                return _ZERO
            if len(rows) > 1:
                warnings.append(
                    f"{derivation.metric_name}: {len(rows)} rows matched a "
                    f"passthrough; using fact {rows[0].fact_id}"
                )
            raw = rows[0].fields.get(derivation.source_field or "")
            amount = to_decimal(raw)
            if amount is None:
                if raw is not None:
                    warnings.append(
                        f"{derivation.metric_name}: non-numeric value {raw!r} "
                        f"in fact {rows[0].fact_id}"
                    )
                return _ZERO
            return amount
    raise ValueError(f"Not a row aggregation: {derivation.operation}")


def _ratio_order(ratios: Sequence[MetricDerivation], known: set[str]) -> tuple[list[MetricDerivation], list[MetricDerivation]]:
    """Split ratios into a resolvable dependency order and the unresolvable rest."""
    ratio_names = {r.metric_name for r in ratios}
    pending = list(ratios)
    ordered: list[MetricDerivation] = []
    available = set(known)
    progressed = True
    while pending and progressed:
        progressed = False
        for ratio in list(pending):
            refs = {ratio.numerator_metric, ratio.denominator_metric}
            if all(ref in available or ref not in ratio_names for ref in refs):
                ordered.append(ratio)
                available.add(ratio.metric_name)
                pending.remove(ratio)
                progressed = True
    return ordered, pending


@traced_engine(
    "metric_derivation", "1.0", fingerprint_fields=("entity_id", "period_id")
)
def resolve_metrics(
    entity_id: str,
    period_id: str,
    derivations: Sequence[MetricDerivation],
    fact_source: FactSource,
) -> MetricResolution:
    """Resolve every derivation for one entity and period."""
    values: dict[str, Decimal] = {}
    sources: dict[str, tuple[str, ...]] = {}
    zero_denominators: set[str] = set()
    warnings: list[str] = []

    ratios = [d for d in derivations if d.is_ratio]
    for derivation in derivations:
        if derivation.is_ratio:
            continue
        rows = fact_source.get_fact_rows(
            entity_id,
            period_id if derivation.period_scoped else None,
            derivation.source_pattern or "",
        )
        if derivation.filters:
            rows = [r for r in rows if all(_matches(r, f) for f in derivation.filters)]
        values[derivation.metric_name] = _reduce(derivation, rows, warnings)
        sources[derivation.metric_name] = tuple(sorted(r.fact_id for r in rows))

    ordered, unresolved = _ratio_order(ratios, set(values))
    for ratio in unresolved:
        warnings.append(
            f"{ratio.metric_name}: circular ratio reference; inputs treated as 0"
        )

    for ratio in ordered + unresolved:
        numerator_name = ratio.numerator_metric or ""
        denominator_name = ratio.denominator_metric or ""
        for ref in (numerator_name, denominator_name):
            if ref not in values and ref not in {r.metric_name for r in ratios}:
                warnings.append(f"{ratio.metric_name}: undefined metric '{ref}' treated as 0")
        numerator = values.get(numerator_name, _ZERO)
        denominator = values.get(denominator_name, _ZERO)
        if denominator == 0:
            values[ratio.metric_name] = _ZERO
            zero_denominators.add(ratio.metric_name)
        else:
            values[ratio.metric_name] = numerator / denominator * ratio.scale_factor
        if numerator_name in zero_denominators or denominator_name in zero_denominators:
            zero_denominators.add(ratio.metric_name)
        sources[ratio.metric_name] = tuple(
            sorted(set(sources.get(numerator_name, ())) | set(sources.get(denominator_name, ())))
        )

    if warnings:
        logger.debug(
            "metric_derivation_warnings",
            extra={"entity_id": entity_id, "period_id": period_id, "warnings": warnings},
        )

    return MetricResolution(
        values=values,
        zero_denominators=frozenset(zero_denominators),
        sources=sources,
        warnings=tuple(warnings),
    )


def derive_metrics(
    entity_id: str,
    period_id: str,
    derivations: Sequence[MetricDerivation],
    fact_source: FactSource,
) -> dict[str, Decimal]:
    """Metric name to resolved value for one entity and period."""
    return resolve_metrics(entity_id, period_id, derivations, fact_source).values

