"""
Services layer: the data-access boundary and the calculation orchestrator.
"""

from incentive_services.calculation_orchestrator import CalculationOrchestrator
from incentive_services.data_access import DataAccess, InMemoryDataAccess

__all__ = [
    "CalculationOrchestrator",
    "DataAccess",
    "InMemoryDataAccess",
]
