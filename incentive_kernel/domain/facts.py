"""Read-only inputs supplied by the data store: entities and committed facts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Entity:
    """A payee (employee, store, agent) with the attributes eligibility reads."""

    entity_id: str
    external_id: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)
    display_name: str = ""


@dataclass(frozen=True)
class FactRow:
    """
    One committed transactional fact.

    ``period_id`` is None for period-agnostic facts such as assigned
    targets. The engine never mutates a fact row.
    """

    fact_id: str
    entity_id: str
    data_type: str
    fields: dict[str, Any] = field(default_factory=dict)
    period_id: str | None = None
