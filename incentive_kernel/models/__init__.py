"""ORM models for the reference data store."""

from incentive_kernel.models.calculation_result import CalculationResultRecord
from incentive_kernel.models.fact import CommittedFact
from incentive_kernel.models.payee import Payee
from incentive_kernel.models.rule_set import RuleSet, RuleSetAssignment

__all__ = [
    "CalculationResultRecord",
    "CommittedFact",
    "Payee",
    "RuleSet",
    "RuleSetAssignment",
]
