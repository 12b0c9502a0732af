"""
incentive_services.calculation_orchestrator -- Batch payout calculation.

Responsibility:
    Drive one calculation run for ``(tenant, rule set, period)``: load and
    validate the plan, evaluate every assigned entity, and hand the full
    result set to the data store as one atomic replace.

Architecture position:
    Services -- orchestration over engines + the DataAccess boundary.
    All payout logic lives in ``incentive_engines``; the orchestrator adds
    sequencing, concurrency, deadlines and persistence.

Invariants enforced:
    - Configuration errors surface before any per-entity work: a missing
      plan raises PlanNotFoundError, a plan with validator errors raises
      PlanInvalidError carrying every error.
    - Each (entity, period, plan) triple is evaluated independently on a
      thread pool bounded by ``EngineSettings.max_concurrency``.  Fact rows
      fetched for one entity are reused only within that entity's
      evaluation.
    - Results are ordered by entity id, so reruns over unchanged data
      produce byte-identical result sets (same ``run_fingerprint``).
    - ``replace_results`` is called exactly once per successful run, also
      with an empty set when nobody is eligible, so stale results never
      survive a rerun.

Failure modes:
    - PlanNotFoundError / PlanInvalidError before evaluation.
    - BatchTimeoutError when the batch deadline passes; no triple starts
      after the deadline and nothing is committed.
    - DataAccessError (or any other worker failure) cancels the remaining
      triples and propagates; nothing is committed.
    - AmbiguousVariantError under the strict variant policy.

Audit relevance:
    Every run logs ``calculation_run_started`` / ``calculation_run_completed``
    with a correlation id; every entity log line carries the entity id via
    LogContext.  Entities without an eligible variant are returned as
    recorded skips, never silently dropped.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from contextvars import copy_context
from decimal import Decimal
from uuid import uuid4

from incentive_config.settings import EngineSettings
from incentive_config.validator import validate_plan
from incentive_engines.aggregator import calculate_variant
from incentive_engines.variant_selector import EligibilityFailure, select_variant
from incentive_kernel.domain.clock import Clock, SystemClock
from incentive_kernel.domain.facts import FactRow
from incentive_kernel.domain.plan import Plan, PlanStatus
from incentive_kernel.domain.results import (
    CalculationResult,
    CalculationRunResult,
    EligibilitySkip,
    RunOutcome,
)
from incentive_kernel.exceptions import (
    BatchTimeoutError,
    PlanInvalidError,
    PlanNotFoundError,
)
from incentive_kernel.logging_config import LogContext, get_logger
from incentive_services.data_access import DataAccess

logger = get_logger("services.calculation_orchestrator")


class _EntityFactSource:
    """Per-entity read-through cache over DataAccess.get_fact_rows."""

    def __init__(self, data_access: DataAccess, entity_id: str):
        self._data_access = data_access
        self._entity_id = entity_id
        self._rows: dict[tuple[str | None, str], Sequence[FactRow]] = {}

    def get_fact_rows(
        self, entity_id: str, period_id: str | None, data_type: str
    ) -> Sequence[FactRow]:
        if entity_id != self._entity_id:
            return self._data_access.get_fact_rows(entity_id, period_id, data_type)
        key = (period_id, data_type)
        if key not in self._rows:
            self._rows[key] = tuple(
                self._data_access.get_fact_rows(entity_id, period_id, data_type)
            )
        return self._rows[key]


class _DeadlinePassed(Exception):
    """Raised inside a worker that was scheduled after the batch deadline."""


class _RunAborted(Exception):
    """Raised inside a worker scheduled after another worker failed."""


class CalculationOrchestrator:
    """
    Runs payout calculations against an injected DataAccess.

    Contract:
        ``run_calculation`` either returns a complete CalculationRunResult
        whose results have been persisted, or raises without persisting.
    """

    def __init__(
        self,
        data_access: DataAccess,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ):
        self._data_access = data_access
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_calculation(
        self, tenant_id: str, rule_set_id: str, period_id: str
    ) -> CalculationRunResult:
        """Calculate and persist payouts of every assigned entity."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=tenant_id,
            rule_set_id=rule_set_id,
            period_id=period_id,
        ):
            started = self._clock.monotonic()
            plan, plan_warnings = self._load_plan(rule_set_id)
            entity_ids = sorted(
                set(self._data_access.list_assigned_entities(tenant_id, rule_set_id))
            )
            logger.info(
                "calculation_run_started",
                extra={
                    "plan_version": plan.version,
                    "assigned_entities": len(entity_ids),
                    "max_concurrency": self._settings.max_concurrency,
                },
            )

            outcomes = self._evaluate_all(plan, entity_ids, period_id, started)

            results = sorted(
                (o for o in outcomes if isinstance(o, CalculationResult)),
                key=lambda r: r.entity_id,
            )
            skipped = sorted(
                (o for o in outcomes if isinstance(o, EligibilitySkip)),
                key=lambda s: s.entity_id,
            )

            self._data_access.replace_results(rule_set_id, period_id, results)

            run_warnings = list(plan_warnings)
            for result in results:
                for warning in result.warnings:
                    if warning not in run_warnings:
                        run_warnings.append(warning)

            total = sum((r.total_payout for r in results), Decimal("0"))
            outcome = RunOutcome.COMPLETED if results else RunOutcome.NO_ELIGIBLE_ENTITIES
            run = CalculationRunResult(
                rule_set_id=rule_set_id,
                period_id=period_id,
                total_payout=total,
                entity_count=len(results),
                results=tuple(results),
                skipped=tuple(skipped),
                warnings=tuple(run_warnings),
                outcome=outcome,
            )

            logger.info(
                "calculation_run_completed",
                extra={
                    "outcome": outcome.value,
                    "entity_count": run.entity_count,
                    "skipped": len(skipped),
                    "total_payout": str(total),
                    "warnings": len(run_warnings),
                    "run_fingerprint": run.run_fingerprint,
                    "duration_ms": round((self._clock.monotonic() - started) * 1000, 2),
                },
            )
            return run

    def calculate_entity(
        self, rule_set_id: str, entity_id: str, period_id: str
    ) -> CalculationResult | EligibilitySkip:
        """Evaluate one entity without persisting anything (debugging aid)."""
        with LogContext.bind(rule_set_id=rule_set_id, period_id=period_id):
            plan, _ = self._load_plan(rule_set_id)
            return self._evaluate_entity(plan, entity_id, period_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_plan(self, rule_set_id: str) -> tuple[Plan, list[str]]:
        plan = self._data_access.get_plan(rule_set_id)
        if plan is None:
            logger.warning("plan_not_found")
            raise PlanNotFoundError(rule_set_id)

        validation = validate_plan(plan, self._settings.band_gap_epsilon)
        if not validation.is_valid:
            logger.warning(
                "plan_invalid",
                extra={"errors": [str(issue) for issue in validation.errors]},
            )
            raise PlanInvalidError(rule_set_id, validation.errors)

        warnings = [str(issue) for issue in validation.warnings]
        if plan.status != PlanStatus.ACTIVE:
            warnings.insert(0, f"plan '{plan.plan_id}' is {plan.status.value}, not active")
        if warnings:
            logger.info("plan_warnings", extra={"warnings": warnings})
        return plan, warnings

    def _evaluate_entity(
        self, plan: Plan, entity_id: str, period_id: str
    ) -> CalculationResult | EligibilitySkip:
        with LogContext.bind(entity_id=entity_id):
            entity = self._data_access.get_entity(entity_id)
            if entity is None:
                logger.warning("entity_not_found")
                return EligibilitySkip(entity_id, "entity not found in data store")

            selection = select_variant(entity, plan.variants, self._settings.variant_match_policy)
            if isinstance(selection, EligibilityFailure):
                return EligibilitySkip(entity_id, selection.reason)

            source = _EntityFactSource(self._data_access, entity_id)
            return calculate_variant(
                entity, period_id, plan, selection.variant, source, selection.warnings
            )

    def _evaluate_all(
        self,
        plan: Plan,
        entity_ids: Sequence[str],
        period_id: str,
        started: float,
    ) -> list[CalculationResult | EligibilitySkip]:
        if not entity_ids:
            return []

        timeout = self._settings.batch_timeout_seconds
        deadline = None if timeout is None else started + timeout
        aborted = threading.Event()

        def task(entity_id: str) -> CalculationResult | EligibilitySkip:
            if aborted.is_set():
                raise _RunAborted()
            if deadline is not None and self._clock.monotonic() > deadline:
                raise _DeadlinePassed()
            return self._evaluate_entity(plan, entity_id, period_id)

        workers = min(self._settings.max_concurrency, len(entity_ids))
        outcomes: list[CalculationResult | EligibilitySkip] = []
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="incentive-calc"
        ) as pool:
            futures: list[Future] = [
                pool.submit(copy_context().run, task, entity_id)
                for entity_id in entity_ids
            ]
            try:
                for future in futures:
                    outcomes.append(future.result())
            except _DeadlinePassed:
                aborted.set()
                pool.shutdown(wait=True, cancel_futures=True)
                logger.error(
                    "calculation_run_timed_out",
                    extra={"completed": len(outcomes), "total": len(entity_ids)},
                )
                raise BatchTimeoutError(
                    plan.plan_id, period_id, len(outcomes), len(entity_ids)
                ) from None
            except BaseException:
                aborted.set()
                pool.shutdown(wait=True, cancel_futures=True)
                logger.error("calculation_run_failed", exc_info=True)
                raise
        return outcomes
