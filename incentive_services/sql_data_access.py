"""
incentive_services.sql_data_access -- SQLAlchemy implementation of DataAccess.

Responsibility:
    Serve entities, committed facts, rule sets and assignments from the
    relational store, and persist calculation results.

Architecture position:
    Services -- I/O boundary.  Uses ``incentive_kernel.models`` and
    ``incentive_config.loader.parse_plan`` (stored plan documents have the
    same shape as plan YAML files).

Invariants enforced:
    - Reads open a short-lived session per call, so concurrent worker
      threads never share a session.
    - ``replace_results`` runs the delete and the insert inside one
      ``session_scope`` transaction: both happen or neither does.
    - Facts are returned in ``fact_code`` order so passthrough derivations
      are deterministic.

Failure modes:
    - Any ``SQLAlchemyError`` is re-raised as ``DataAccessError`` with the
      operation name.
    - A stored plan document that does not parse raises ``KeyError`` or
      ``ValueError`` from the loader.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from incentive_config.loader import parse_plan
from incentive_kernel.db.engine import session_scope
from incentive_kernel.domain.facts import Entity, FactRow
from incentive_kernel.domain.plan import Plan
from incentive_kernel.domain.results import CalculationResult
from incentive_kernel.exceptions import DataAccessError
from incentive_kernel.logging_config import get_logger
from incentive_kernel.models import (
    CalculationResultRecord,
    CommittedFact,
    Payee,
    RuleSet,
    RuleSetAssignment,
)
from incentive_kernel.utils.hashing import hash_payload
from incentive_services.data_access import DataAccess

logger = get_logger("services.sql_data_access")


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "data_access_failed",
            extra={"operation": operation, "error": str(exc)},
        )
        raise DataAccessError(operation, str(exc)) from exc


class SqlDataAccess(DataAccess):
    """DataAccess over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # -- reads ---------------------------------------------------------------

    def get_entity(self, entity_id: str) -> Entity | None:
        with _translate_errors("get_entity"), self._session_factory() as session:
            row = session.scalars(
                select(Payee).where(Payee.entity_id == entity_id).limit(1)
            ).first()
            if row is None:
                return None
            return Entity(
                entity_id=row.entity_id,
                external_id=row.external_id,
                attributes=dict(row.attributes or {}),
                display_name=row.display_name,
            )

    def get_fact_rows(
        self, entity_id: str, period_id: str | None, data_type: str
    ) -> Sequence[FactRow]:
        stmt = select(CommittedFact).where(
            CommittedFact.entity_id == entity_id,
            CommittedFact.data_type == data_type,
        )
        if period_id is not None:
            stmt = stmt.where(CommittedFact.period_id == period_id)
        stmt = stmt.order_by(CommittedFact.fact_code)

        with _translate_errors("get_fact_rows"), self._session_factory() as session:
            return [
                FactRow(
                    fact_id=row.fact_code,
                    entity_id=row.entity_id,
                    period_id=row.period_id,
                    data_type=row.data_type,
                    fields=dict(row.fields or {}),
                )
                for row in session.scalars(stmt)
            ]

    def get_plan(self, rule_set_id: str) -> Plan | None:
        with _translate_errors("get_plan"), self._session_factory() as session:
            row = session.scalars(
                select(RuleSet).where(RuleSet.rule_set_id == rule_set_id)
            ).first()
            if row is None:
                return None
            document = dict(row.definition)
            document.update(
                plan_id=row.rule_set_id,
                name=row.name,
                status=row.status,
                version=row.version,
            )
        return parse_plan(document)

    def list_assigned_entities(self, tenant_id: str, rule_set_id: str) -> Sequence[str]:
        stmt = (
            select(RuleSetAssignment.entity_id)
            .where(
                RuleSetAssignment.tenant_id == tenant_id,
                RuleSetAssignment.rule_set_id == rule_set_id,
            )
            .order_by(RuleSetAssignment.entity_id)
        )
        with _translate_errors("list_assigned_entities"), self._session_factory() as session:
            return list(session.scalars(stmt))

    def get_results(self, rule_set_id: str, period_id: str) -> list[dict[str, Any]]:
        """Stored result payloads for a rule set and period, by entity id."""
        stmt = (
            select(CalculationResultRecord)
            .where(
                CalculationResultRecord.rule_set_id == rule_set_id,
                CalculationResultRecord.period_id == period_id,
            )
            .order_by(CalculationResultRecord.entity_id)
        )
        with _translate_errors("get_results"), self._session_factory() as session:
            return [row.payload for row in session.scalars(stmt)]

    # -- writes --------------------------------------------------------------

    def replace_results(
        self,
        rule_set_id: str,
        period_id: str,
        results: Sequence[CalculationResult],
    ) -> None:
        with _translate_errors("replace_results"), session_scope(self._session_factory) as session:
            deleted = session.execute(
                delete(CalculationResultRecord).where(
                    CalculationResultRecord.rule_set_id == rule_set_id,
                    CalculationResultRecord.period_id == period_id,
                )
            ).rowcount
            for result in results:
                payload = result.to_dict()
                session.add(
                    CalculationResultRecord(
                        rule_set_id=rule_set_id,
                        period_id=period_id,
                        entity_id=result.entity_id,
                        variant_id=result.variant_id,
                        total_payout=result.total_payout,
                        currency=result.currency,
                        payload=payload,
                        result_hash=hash_payload(payload),
                    )
                )
        logger.info(
            "results_replaced",
            extra={
                "rule_set_id": rule_set_id,
                "period_id": period_id,
                "deleted": deleted,
                "inserted": len(results),
            },
        )

    def save_entity(self, tenant_id: str, entity: Entity) -> None:
        with _translate_errors("save_entity"), session_scope(self._session_factory) as session:
            session.add(
                Payee(
                    tenant_id=tenant_id,
                    entity_id=entity.entity_id,
                    external_id=entity.external_id,
                    display_name=entity.display_name,
                    attributes=dict(entity.attributes),
                )
            )

    def save_facts(self, facts: Sequence[FactRow]) -> None:
        with _translate_errors("save_facts"), session_scope(self._session_factory) as session:
            session.add_all(
                CommittedFact(
                    fact_code=fact.fact_id,
                    entity_id=fact.entity_id,
                    period_id=fact.period_id,
                    data_type=fact.data_type,
                    fields=dict(fact.fields),
                )
                for fact in facts
            )

    def save_rule_set(self, tenant_id: str, document: dict[str, Any]) -> None:
        """Store a plan document (the shape ``parse_plan`` accepts)."""
        parse_plan(document)
        with _translate_errors("save_rule_set"), session_scope(self._session_factory) as session:
            session.add(
                RuleSet(
                    tenant_id=tenant_id,
                    rule_set_id=str(document["plan_id"]),
                    name=document["name"],
                    status=document.get("status", "active"),
                    version=int(document.get("version", 1)),
                    definition=document,
                )
            )

    def assign(self, tenant_id: str, rule_set_id: str, entity_id: str) -> None:
        with _translate_errors("assign"), session_scope(self._session_factory) as session:
            session.add(
                RuleSetAssignment(
                    tenant_id=tenant_id,
                    rule_set_id=rule_set_id,
                    entity_id=entity_id,
                )
            )
