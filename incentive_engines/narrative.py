"""
incentive_engines.narrative -- Human-readable calculation sentences.

Builds the sentence a reviewer reads for each calculation step
("store_sales_attainment 106.25 matched tier '105-110' = 300.00") from the
step's recorded trace alone.  Nothing here recomputes a payout.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from incentive_kernel.domain.plan import ComponentType
from incentive_kernel.domain.results import CalculationResult, CalculationStep


def _money(value: Any) -> str:
    return f"{Decimal(value):,.2f}"


def _number(value: Any) -> str:
    amount = Decimal(value)
    if amount == amount.to_integral_value():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


def _percent(rate: Any) -> str:
    return f"{Decimal(rate) * 100:.2f}".rstrip("0").rstrip(".") + "%"


def describe_step(step: CalculationStep) -> str:
    """One-line explanation of how ``step.output_value`` was reached."""
    trace = step.lookup_trace
    inputs = trace.inputs
    output = _money(step.output_value)

    match step.component_type:
        case ComponentType.TIER_LOOKUP.value:
            (metric, value), = inputs.items()
            if trace.matched_tier_label is None:
                body = f"{metric} {_number(value)} matched no tier = {output}"
            else:
                body = f"{metric} {_number(value)} matched tier '{trace.matched_tier_label}' = {output}"

        case ComponentType.MATRIX_LOOKUP.value:
            names = list(inputs)
            row_metric = trace.details.get("row_metric", names[0])
            column_metric = trace.details.get("column_metric", names[-1])
            row_value = inputs[row_metric]
            column_value = inputs[column_metric]
            row = f"row '{trace.matched_row_label}'" if trace.matched_row_label else "no row"
            column = (
                f"column '{trace.matched_column_label}'"
                if trace.matched_column_label
                else "no column"
            )
            body = (
                f"{row_metric} {_number(row_value)} in {row}, "
                f"{column_metric} {_number(column_value)} in {column} = {output}"
            )

        case ComponentType.PERCENTAGE.value:
            base = _money(trace.base_amount or 0)
            rate = _percent(trace.rate or 0)
            if "min_threshold" in trace.details and step.output_value == 0 and (
                Decimal(trace.base_amount or 0) < Decimal(trace.details["min_threshold"])
            ):
                body = (
                    f"{base} is below the minimum of "
                    f"{_money(trace.details['min_threshold'])} = {output}"
                )
            elif "uncapped_output" in trace.details:
                body = (
                    f"{base} x {rate} = {_money(trace.details['uncapped_output'])}, "
                    f"capped at {output}"
                )
            else:
                body = f"{base} x {rate} = {output}"

        case ComponentType.CONDITIONAL_PERCENTAGE.value:
            names = list(inputs)
            base = _money(trace.base_amount or 0)
            condition_metric = names[-1]
            value = _number(inputs[condition_metric])
            if trace.matched_tier_label is None:
                body = f"{condition_metric} {value} matched no condition = {output}"
            else:
                body = (
                    f"{condition_metric} {value} in '{trace.matched_tier_label}' "
                    f"selects {_percent(trace.rate or 0)}; "
                    f"{base} x {_percent(trace.rate or 0)} = {output}"
                )

        case ComponentType.WEIGHTED_KPI.value:
            parts = [
                f"{k['name']} {_number(k['actual'])} / {_number(k['target'])} = "
                f"{_percent(k['attainment'])} x {_number(k['weight'])}% weight"
                for k in trace.details.get("kpis", [])
            ]
            body = (
                "; ".join(parts)
                + f"; weighted attainment {_percent(trace.details.get('weighted_attainment', 0))}"
                + f" -> multiplier {Decimal(trace.details.get('multiplier', 0)):.2f}x"
                + f" x target {_money(trace.base_amount or 0)} = {output}"
            )

        case _:
            body = f"= {output}"

    sentence = f"{step.component_name}: {body}"
    if step.flags:
        sentence += f" [{', '.join(f.value for f in step.flags)}]"
    return sentence


def describe_result(result: CalculationResult) -> list[str]:
    """Every step sentence followed by the total line."""
    lines = [describe_step(step) for step in result.components]
    lines.append(f"Total: {_money(result.total_payout)} {result.currency}")
    return lines
