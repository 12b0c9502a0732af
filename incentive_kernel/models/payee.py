"""
Module: incentive_kernel.models.payee
Responsibility: ORM persistence for the entities a plan pays (employees,
    stores, agents) and the attributes variant eligibility reads.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from typing import Any

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import TimestampedBase


class Payee(TimestampedBase):
    """An entity that can receive a payout."""

    __tablename__ = "entities"
    __table_args__ = (
        UniqueConstraint("tenant_id", "entity_id", name="uq_entity_tenant_code"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    attributes: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<Payee {self.entity_id}>"
