"""
Engine Settings (``incentive_config.settings``).

Runtime knobs for the calculation orchestrator, read from an optional YAML
file and overridden by ``INCENTIVE_*`` environment variables:

==============================  ============================  ============
Setting                         Environment variable          Default
==============================  ============================  ============
max_concurrency                 INCENTIVE_MAX_CONCURRENCY     4
batch_timeout_seconds           INCENTIVE_BATCH_TIMEOUT       none
band_gap_epsilon                INCENTIVE_BAND_GAP_EPSILON    0.01
variant_match_policy            INCENTIVE_VARIANT_POLICY      first_match
database_url                    INCENTIVE_DATABASE_URL        none
==============================  ============================  ============

Invalid values raise ``ValueError`` at load time, never mid-run.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Any

from incentive_config.loader import load_yaml_file, parse_decimal
from incentive_engines.variant_selector import VariantMatchPolicy

_ENV_PREFIX = "INCENTIVE_"


@dataclass(frozen=True)
class EngineSettings:
    max_concurrency: int = 4
    batch_timeout_seconds: float | None = None
    band_gap_epsilon: Decimal = Decimal("0.01")
    variant_match_policy: VariantMatchPolicy = VariantMatchPolicy.FIRST_MATCH
    database_url: str | None = None

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.batch_timeout_seconds is not None and self.batch_timeout_seconds <= 0:
            raise ValueError(
                f"batch_timeout_seconds must be positive, got {self.batch_timeout_seconds}"
            )
        if self.band_gap_epsilon < 0:
            raise ValueError(f"band_gap_epsilon must be >= 0, got {self.band_gap_epsilon}")


def parse_settings(data: Mapping[str, Any], base: EngineSettings | None = None) -> EngineSettings:
    """Apply the keys present in ``data`` on top of ``base`` (or the defaults)."""
    settings = base or EngineSettings()
    changes: dict[str, Any] = {}
    if data.get("max_concurrency") is not None:
        changes["max_concurrency"] = int(data["max_concurrency"])
    if data.get("batch_timeout_seconds") is not None:
        changes["batch_timeout_seconds"] = float(data["batch_timeout_seconds"])
    if data.get("band_gap_epsilon") is not None:
        changes["band_gap_epsilon"] = parse_decimal(data["band_gap_epsilon"], "band_gap_epsilon")
    if data.get("variant_match_policy") is not None:
        changes["variant_match_policy"] = VariantMatchPolicy(data["variant_match_policy"])
    if data.get("database_url") is not None:
        changes["database_url"] = str(data["database_url"])
    return replace(settings, **changes)


def _from_environment(environ: Mapping[str, str]) -> dict[str, Any]:
    names = {
        "MAX_CONCURRENCY": "max_concurrency",
        "BATCH_TIMEOUT": "batch_timeout_seconds",
        "BAND_GAP_EPSILON": "band_gap_epsilon",
        "VARIANT_POLICY": "variant_match_policy",
        "DATABASE_URL": "database_url",
    }
    return {
        key: environ[_ENV_PREFIX + suffix]
        for suffix, key in names.items()
        if environ.get(_ENV_PREFIX + suffix)
    }


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """
    Settings from ``path`` (when given), then environment overrides.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        ValueError: on an invalid value.
    """
    settings = EngineSettings()
    if path is not None:
        settings = parse_settings(load_yaml_file(path).get("engine", {}), settings)
    return parse_settings(_from_environment(os.environ if environ is None else environ), settings)
