"""
incentive_services.data_access -- Data-access boundary of the calculation core.

Responsibility:
    Define the only interface through which the orchestrator reaches the
    record store, plus an in-memory implementation used by tests, the
    command line tool and any caller that already holds its data.

Architecture position:
    Services -- I/O boundary.  Engines see only the ``get_fact_rows``
    half of this interface (``incentive_engines.derivation.FactSource``).

Contract:
    - ``get_fact_rows`` is a read-only query; ``period_id=None`` means
      "any period" and is used for period-agnostic facts such as targets.
    - ``replace_results`` deletes every stored result for
      ``(rule_set_id, period_id)`` and inserts the new set as ONE atomic
      unit.  A reader never sees the deleted-but-not-replaced state.
    - Implementations raise ``DataAccessError`` when the store is
      unreachable or a query fails.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable, Sequence

from incentive_kernel.domain.facts import Entity, FactRow
from incentive_kernel.domain.plan import Plan
from incentive_kernel.domain.results import CalculationResult


class DataAccess(ABC):
    """Abstract data-access collaborator injected into the orchestrator."""

    @abstractmethod
    def get_entity(self, entity_id: str) -> Entity | None: ...

    @abstractmethod
    def get_fact_rows(
        self, entity_id: str, period_id: str | None, data_type: str
    ) -> Sequence[FactRow]: ...

    @abstractmethod
    def get_plan(self, rule_set_id: str) -> Plan | None: ...

    @abstractmethod
    def list_assigned_entities(self, tenant_id: str, rule_set_id: str) -> Sequence[str]:
        """Entity ids placed under ``rule_set_id`` for ``tenant_id``."""

    @abstractmethod
    def replace_results(
        self,
        rule_set_id: str,
        period_id: str,
        results: Sequence[CalculationResult],
    ) -> None: ...


class InMemoryDataAccess(DataAccess):
    """
    Dict-backed store.

    ``replace_results`` swaps the whole result set under a lock, so it is
    atomic with respect to ``get_results``.
    """

    def __init__(
        self,
        entities: Iterable[Entity] = (),
        facts: Iterable[FactRow] = (),
        plans: Iterable[Plan] = (),
        assignments: Iterable[tuple[str, str, str]] = (),
    ):
        self._entities: dict[str, Entity] = {e.entity_id: e for e in entities}
        self._facts: dict[tuple[str, str], list[FactRow]] = defaultdict(list)
        for fact in facts:
            self._facts[(fact.entity_id, fact.data_type)].append(fact)
        self._plans: dict[str, Plan] = {p.plan_id: p for p in plans}
        self._assignments: dict[tuple[str, str], list[str]] = defaultdict(list)
        for tenant_id, rule_set_id, entity_id in assignments:
            self.assign(tenant_id, rule_set_id, entity_id)
        self._results: dict[tuple[str, str], tuple[CalculationResult, ...]] = {}
        self._lock = threading.Lock()
        self.replace_calls = 0

    @classmethod
    def from_dataset(cls, dataset, plans: Iterable[Plan] = ()) -> InMemoryDataAccess:
        """Build a store from an ``incentive_config.loader.Dataset``."""
        return cls(
            entities=dataset.entities,
            facts=dataset.facts,
            plans=plans,
            assignments=[
                (dataset.tenant_id, rule_set_id, entity_id)
                for rule_set_id, entity_id in dataset.assignments
            ],
        )

    # -- setup ---------------------------------------------------------------

    def add_entity(self, entity: Entity) -> None:
        self._entities[entity.entity_id] = entity

    def add_fact(self, fact: FactRow) -> None:
        self._facts[(fact.entity_id, fact.data_type)].append(fact)

    def add_plan(self, plan: Plan) -> None:
        self._plans[plan.plan_id] = plan

    def assign(self, tenant_id: str, rule_set_id: str, entity_id: str) -> None:
        assigned = self._assignments[(tenant_id, rule_set_id)]
        if entity_id not in assigned:
            assigned.append(entity_id)

    # -- DataAccess ----------------------------------------------------------

    def get_entity(self, entity_id: str) -> Entity | None:
        return self._entities.get(entity_id)

    def get_fact_rows(
        self, entity_id: str, period_id: str | None, data_type: str
    ) -> Sequence[FactRow]:
        rows = self._facts.get((entity_id, data_type), [])
        if period_id is None:
            return list(rows)
        return [r for r in rows if r.period_id == period_id]

    def get_plan(self, rule_set_id: str) -> Plan | None:
        return self._plans.get(rule_set_id)

    def list_assigned_entities(self, tenant_id: str, rule_set_id: str) -> Sequence[str]:
        return list(self._assignments.get((tenant_id, rule_set_id), []))

    def replace_results(
        self,
        rule_set_id: str,
        period_id: str,
        results: Sequence[CalculationResult],
    ) -> None:
        with self._lock:
            self._results[(rule_set_id, period_id)] = tuple(results)
            self.replace_calls += 1

    def get_results(self, rule_set_id: str, period_id: str) -> tuple[CalculationResult, ...]:
        with self._lock:
            return self._results.get((rule_set_id, period_id), ())
