"""
Module: incentive_kernel.models.fact
Responsibility: ORM persistence for committed transactional facts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    The calculation engine only ever SELECTs from this table.  Rows are
    written by the ingestion side of the product.
"""

from typing import Any

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import TimestampedBase


class CommittedFact(TimestampedBase):
    """One committed fact row: a data type plus a bag of fields."""

    __tablename__ = "committed_facts"
    __table_args__ = (
        Index("idx_fact_entity_type_period", "entity_id", "data_type", "period_id"),
    )

    fact_code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    period_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    data_type: Mapped[str] = mapped_column(String(100), nullable=False)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<CommittedFact {self.fact_code} {self.data_type}>"
