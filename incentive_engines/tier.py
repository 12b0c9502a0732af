"""
incentive_engines.tier -- Tier lookup evaluator.

Responsibility:
    Map one resolved metric onto an ordered tier table and return the
    matched tier's payout value.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Half-open ``[min, max)`` tiers; the last tier also takes every value at
      or above its own ``min`` (see ``incentive_engines.bands``).
    - Identical inputs always produce identical outputs.

Failure modes:
    - None raised.  An unmatched value yields output 0 and no label.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from incentive_engines.bands import scan_band
from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plan import Tier


@dataclass(frozen=True)
class TierMatch:
    output: Decimal
    matched_tier_label: str | None = None
    tier_index: int | None = None

    @property
    def matched(self) -> bool:
        return self.tier_index is not None


@traced_engine("tier_lookup", "1.0", fingerprint_fields=("value", "tiers"))
def evaluate_tier(value: Decimal, tiers: Sequence[Tier]) -> TierMatch:
    """Resolve ``value`` against ``tiers``; unmatched values pay 0."""
    index = scan_band(value, tiers)
    if index is None:
        return TierMatch(output=Decimal("0"))
    tier = tiers[index]
    return TierMatch(
        output=tier.value,
        matched_tier_label=tier.display_label,
        tier_index=index,
    )
