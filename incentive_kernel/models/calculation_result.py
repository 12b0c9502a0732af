"""
Module: incentive_kernel.models.calculation_result
Responsibility: ORM persistence for per-entity calculation results.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one row per (rule_set_id, period_id, entity_id)
      (uq_result_rule_set_period_entity).
    - Rows for a (rule_set_id, period_id) are only ever replaced as a whole,
      inside one transaction.

Audit relevance:
    ``payload`` is the canonical CalculationResult serialisation with the
    full step trail; ``result_hash`` is its SHA-256.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import TimestampedBase


class CalculationResultRecord(TimestampedBase):
    """Stored payout of one entity for one period and rule set."""

    __tablename__ = "calculation_results"
    __table_args__ = (
        UniqueConstraint(
            "rule_set_id", "period_id", "entity_id",
            name="uq_result_rule_set_period_entity",
        ),
    )

    rule_set_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    period_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    variant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    total_payout: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    result_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<CalculationResultRecord {self.rule_set_id}/{self.period_id}/{self.entity_id}>"
