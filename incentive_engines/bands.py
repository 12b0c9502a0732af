"""
incentive_engines.bands -- Shared half-open band scan.

Every lookup in the engine (tier tables, both matrix axes, conditional
rate tables) resolves its band through ``scan_band`` so the matching and
fallback rules are identical everywhere.

Rule:
    1. Return the first band with ``min <= value < max``.
    2. Otherwise, if ``value >= bands[-1].min``, return the last band.  A
       value past a finite final boundary still resolves.
    3. Otherwise return None: empty table, value below the first band,
       value inside a gap between bands, or a NaN value.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Protocol


class BandLike(Protocol):
    min: Decimal
    max: Decimal


def scan_band(value: Decimal, bands: Sequence[BandLike]) -> int | None:
    """Index of the band ``value`` falls in, or None when unmatched."""
    if not bands or value.is_nan():
        return None
    for index, band in enumerate(bands):
        if band.min <= value < band.max:
            return index
    if value >= bands[-1].min:
        return len(bands) - 1
    return None
