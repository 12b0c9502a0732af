"""
Module: incentive_kernel.models.rule_set
Responsibility: ORM persistence for rule sets (plans) and their entity
    assignments.
Architecture position: Kernel > Models.  May import from db/base.py only.

The plan body is stored as the same document the YAML loader accepts, so
one parser (incentive_config.loader.parse_plan) serves files and rows.
"""

from typing import Any

from sqlalchemy import JSON, BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from incentive_kernel.db.base import TimestampedBase


class RuleSet(TimestampedBase):
    """A stored compensation plan definition."""

    __tablename__ = "rule_sets"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rule_set_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    definition: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<RuleSet {self.rule_set_id} v{self.version}>"


class RuleSetAssignment(TimestampedBase):
    """Places an entity under a rule set."""

    __tablename__ = "rule_set_assignments"
    __table_args__ = (
        UniqueConstraint("rule_set_id", "entity_id", name="uq_assignment_rule_set_entity"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rule_set_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
