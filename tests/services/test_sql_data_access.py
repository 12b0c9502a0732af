"""
Tests for the SQLAlchemy-backed DataAccess.

Covers:
- Entities, facts, rule set documents and assignments round-trip
- Stored plan documents parse back to the same Plan as the YAML file
- replace_results is all-or-nothing
- SQLAlchemy failures surface as DataAccessError
- A full orchestrator run against SQLite matches the in-memory run
"""

from decimal import Decimal

import pytest

from incentive_config.loader import load_yaml_file
from incentive_kernel.domain.facts import Entity, FactRow
from incentive_kernel.exceptions import DataAccessError
from incentive_services.calculation_orchestrator import CalculationOrchestrator
from incentive_services.sql_data_access import SqlDataAccess
from tests.conftest import SAMPLES

TENANT = "optica-mx"
RULE_SET = "optica-2024"
PERIOD = "2024-03"


@pytest.fixture
def sql_store(sqlite_session_factory):
    return SqlDataAccess(sqlite_session_factory)


@pytest.fixture
def seeded_store(sql_store, optica_dataset):
    """SQLite store holding the optica sample plan and dataset."""
    sql_store.save_rule_set(TENANT, load_yaml_file(SAMPLES / "optica_plan.yaml"))
    for entity in optica_dataset.entities:
        sql_store.save_entity(TENANT, entity)
    sql_store.save_facts(optica_dataset.facts)
    for rule_set_id, entity_id in optica_dataset.assignments:
        sql_store.assign(TENANT, rule_set_id, entity_id)
    return sql_store


class TestRoundTrip:
    def test_entity(self, sql_store, store_entity):
        sql_store.save_entity("t1", store_entity)

        assert sql_store.get_entity("store-017") == store_entity
        assert sql_store.get_entity("store-999") is None

    def test_fact_rows_by_period_in_code_order(self, sql_store):
        sql_store.save_facts(
            [
                FactRow("b-2", "e1", "sales", {"amount": 20}, "2024-03"),
                FactRow("a-1", "e1", "sales", {"amount": 10}, "2024-03"),
                FactRow("c-3", "e1", "sales", {"amount": 30}, "2024-02"),
                FactRow("goal", "e1", "goals", {"target": 100}),
            ]
        )

        march = sql_store.get_fact_rows("e1", "2024-03", "sales")
        every_period = sql_store.get_fact_rows("e1", None, "sales")

        assert [f.fact_id for f in march] == ["a-1", "b-2"]
        assert [f.fact_id for f in every_period] == ["a-1", "b-2", "c-3"]
        assert march[0].fields == {"amount": 10}
        assert sql_store.get_fact_rows("e1", None, "goals")[0].period_id is None

    def test_stored_plan_matches_yaml(self, seeded_store, optica_plan):
        assert seeded_store.get_plan(RULE_SET) == optica_plan
        assert seeded_store.get_plan("missing") is None

    def test_assignments_scoped_by_tenant(self, sql_store):
        sql_store.assign("t1", "p1", "e2")
        sql_store.assign("t1", "p1", "e1")
        sql_store.assign("t2", "p2", "e3")

        assert sql_store.list_assigned_entities("t1", "p1") == ["e1", "e2"]
        assert sql_store.list_assigned_entities("t2", "p1") == []

    def test_unparseable_rule_set_is_not_stored(self, sql_store):
        with pytest.raises(KeyError):
            sql_store.save_rule_set("t1", {"plan_id": "broken"})

        assert sql_store.get_plan("broken") is None


class TestReplaceResults:
    def test_replace_is_all_or_nothing(self, seeded_store):
        run = CalculationOrchestrator(seeded_store).run_calculation(TENANT, RULE_SET, PERIOD)
        before = seeded_store.get_results(RULE_SET, PERIOD)
        duplicate = run.results[0]

        with pytest.raises(DataAccessError) as exc_info:
            seeded_store.replace_results(RULE_SET, PERIOD, [duplicate, duplicate])

        assert exc_info.value.operation == "replace_results"
        assert seeded_store.get_results(RULE_SET, PERIOD) == before

    def test_rerun_replaces_previous_rows(self, seeded_store, captured_logs):
        orchestrator = CalculationOrchestrator(seeded_store)
        orchestrator.run_calculation(TENANT, RULE_SET, PERIOD)
        orchestrator.run_calculation(TENANT, RULE_SET, PERIOD)

        assert len(seeded_store.get_results(RULE_SET, PERIOD)) == 3
        replaced = [r for r in captured_logs() if r["message"] == "results_replaced"]
        assert [(r["deleted"], r["inserted"]) for r in replaced] == [(0, 3), (3, 3)]


class TestErrorTranslation:
    def test_integrity_error(self, sql_store):
        entity = Entity("store-017")
        sql_store.save_entity("t1", entity)

        with pytest.raises(DataAccessError) as exc_info:
            sql_store.save_entity("t1", entity)

        assert exc_info.value.code == "DATA_ACCESS_FAILED"
        assert exc_info.value.operation == "save_entity"

    def test_missing_tables(self, sql_store):
        from incentive_kernel.db.engine import drop_tables

        drop_tables()

        with pytest.raises(DataAccessError) as exc_info:
            sql_store.get_entity("store-017")

        assert exc_info.value.operation == "get_entity"


class TestOrchestratorOverSql:
    def test_matches_in_memory_run(self, seeded_store, optica_store):
        sql_run = CalculationOrchestrator(seeded_store).run_calculation(TENANT, RULE_SET, PERIOD)
        memory_run = CalculationOrchestrator(optica_store).run_calculation(TENANT, RULE_SET, PERIOD)

        assert sql_run.to_dict() == memory_run.to_dict()
        assert sql_run.total_payout == Decimal("3070")

    def test_persisted_payloads(self, seeded_store):
        run = CalculationOrchestrator(seeded_store).run_calculation(TENANT, RULE_SET, PERIOD)

        assert seeded_store.get_results(RULE_SET, PERIOD) == [r.to_dict() for r in run.results]
