"""
Action Pipeline Module

Architectural Intent:
- Executes an ordered sequence of Steps for one lifecycle operation
- Tracks every forward and compensating operation in a ledger so callers can
  report partial progress ("VPC created, IAM role failed, VPC torn down")
- Knows nothing about clouds; Steps are opaque objects built by the
  provider adapters

Execution Model:
1. Steps run strictly in order; the next one starts only after the previous
   forward operation returned
2. A step failure (exception or timeout) stops forward execution
3. With rollback_on_failure, compensations of the previously succeeded steps
   run in reverse order; a failing compensation is recorded and rollback
   continues with the remaining steps
4. Destructive steps are never compensated; steps without a compensation
   roll back as a no-op
5. Cancellation still runs the rollback when enabled, then propagates; a
   cancellation arriving during rollback is recorded and the remaining
   compensations still run before it propagates

The pipeline never persists anything. Persistence is the caller's job, once,
after a terminal result. Callers that must persist after a cancellation pass
their own PipelineResult, which holds the partial ledger when execute raises.
"""

from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from clusterforge.domain.exceptions import (
    ClusterforgeError,
    RollbackPartialFailure,
    StepFailure,
    StepTimeoutError,
)
from clusterforge.domain.ports.telemetry_port import TelemetryPort
from clusterforge.domain.value_objects.step import Step, StepContext, StepOperation


class StepPhase(Enum):
    FORWARD = "forward"
    COMPENSATE = "compensate"


class StepOutcome(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StepRecord:
    step_name: str
    phase: StepPhase
    outcome: StepOutcome
    error: Optional[BaseException] = None

    def __str__(self) -> str:
        label = "rollback" if self.phase is StepPhase.COMPENSATE else "step"
        text = f"{self.step_name}: {label} {self.outcome.value}"
        if self.error is not None:
            text += f" ({self.error})"
        return text


@dataclass
class PipelineResult:
    """Per-step outcome ledger of one pipeline run.

    Attributes:
        records: Forward and compensation records in the order they ran.
        rolled_back: True if the rollback phase was entered.
        error: StepFailure for the failing forward step, or
               RollbackPartialFailure if compensations failed as well.
    """

    records: list[StepRecord] = field(default_factory=list)
    rolled_back: bool = False
    error: Optional[ClusterforgeError] = None

    @classmethod
    def empty(cls) -> "PipelineResult":
        return cls()

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failed_step(self) -> Optional[str]:
        for record in self.records:
            if record.phase is StepPhase.FORWARD and record.outcome is StepOutcome.FAILED:
                return record.step_name
        return None

    @property
    def completed_steps(self) -> list[str]:
        return [
            r.step_name
            for r in self.records
            if r.phase is StepPhase.FORWARD and r.outcome is StepOutcome.SUCCEEDED
        ]

    @property
    def compensated_steps(self) -> list[str]:
        return [
            r.step_name
            for r in self.records
            if r.phase is StepPhase.COMPENSATE and r.outcome is StepOutcome.SUCCEEDED
        ]

    def outcome_of(
        self, step_name: str, phase: StepPhase = StepPhase.FORWARD
    ) -> Optional[StepOutcome]:
        for record in self.records:
            if record.step_name == step_name and record.phase is phase:
                return record.outcome
        return None

    def summary(self) -> str:
        return ", ".join(str(r) for r in self.records) or "no steps executed"

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


class ActionPipeline:
    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        step_timeout: Optional[float] = None,
        telemetry: Optional[TelemetryPort] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self.step_timeout = step_timeout
        self.telemetry = telemetry

    async def execute(
        self,
        steps: Sequence[Step],
        rollback_on_failure: bool,
        context: Optional[dict[str, Any]] = None,
        result: Optional[PipelineResult] = None,
    ) -> PipelineResult:
        names = [s.name for s in steps]
        if len(names) != len(set(names)):
            raise ValueError(f"Step names must be unique: {names}")

        context = context if context is not None else {}
        result = result if result is not None else PipelineResult()
        completed: list[Step] = []

        for index, step in enumerate(steps, start=1):
            self._logger.info(
                "Executing step %d/%d: %s",
                index,
                len(steps),
                step.name,
                extra={"step": step.name},
            )
            try:
                await self._run(step, step.execute, context)
            except asyncio.CancelledError as exc:
                self._logger.warning(
                    "Pipeline cancelled during step %s", step.name, extra={"step": step.name}
                )
                result.records.append(
                    StepRecord(step.name, StepPhase.FORWARD, StepOutcome.FAILED, exc)
                )
                result.error = StepFailure(step.name, exc)
                if rollback_on_failure:
                    await self._rollback(completed, context, result)
                self._logger.warning("Cancelled pipeline ledger: %s", result.summary())
                raise
            except Exception as exc:
                self._logger.error(
                    "Step %s failed: %s", step.name, exc, extra={"step": step.name}
                )
                result.records.append(
                    StepRecord(step.name, StepPhase.FORWARD, StepOutcome.FAILED, exc)
                )
                result.error = StepFailure(step.name, exc)
                if rollback_on_failure:
                    await self._rollback(completed, context, result)
                return result

            result.records.append(
                StepRecord(step.name, StepPhase.FORWARD, StepOutcome.SUCCEEDED)
            )
            completed.append(step)

        self._logger.info("Pipeline finished, %d step(s) succeeded", len(completed))
        return result

    async def _run(
        self,
        step: Step,
        operation: StepOperation,
        context: StepContext,
        phase: StepPhase = StepPhase.FORWARD,
    ) -> Any:
        timeout = step.timeout if step.timeout is not None else self.step_timeout
        span = None
        if self.telemetry is not None:
            span = self.telemetry.start_span(
                f"{phase.value} {step.name}", {"step": step.name, "phase": phase.value}
            )
        started = time.monotonic()
        error: Optional[BaseException] = None
        try:
            if timeout is None:
                return await operation(context)
            try:
                return await asyncio.wait_for(operation(context), timeout=timeout)
            except asyncio.TimeoutError:
                raise StepTimeoutError(step.name, timeout) from None
        except BaseException as exc:
            error = exc
            raise
        finally:
            if self.telemetry is not None:
                outcome = StepOutcome.FAILED if error is not None else StepOutcome.SUCCEEDED
                elapsed_ms = (time.monotonic() - started) * 1000
                self.telemetry.record_step(step.name, phase.value, outcome.value, elapsed_ms)
                self.telemetry.end_span(span, error)

    async def _rollback(
        self,
        completed: list[Step],
        context: StepContext,
        result: PipelineResult,
    ) -> None:
        """Compensate completed steps in reverse order, best effort."""
        result.rolled_back = True
        cause = result.error if isinstance(result.error, StepFailure) else None
        failures: list[StepFailure] = []
        cancelled: Optional[asyncio.CancelledError] = None

        self._logger.info("Rolling back %d completed step(s)", len(completed))
        for step in reversed(completed):
            if step.destructive:
                self._logger.info(
                    "Not compensating destructive step %s", step.name, extra={"step": step.name}
                )
                result.records.append(
                    StepRecord(step.name, StepPhase.COMPENSATE, StepOutcome.SKIPPED)
                )
                continue

            if step.compensate is None:
                self._logger.debug("Step %s has nothing to undo", step.name)
                result.records.append(
                    StepRecord(step.name, StepPhase.COMPENSATE, StepOutcome.SUCCEEDED)
                )
                continue

            try:
                await self._run(step, step.compensate, context, StepPhase.COMPENSATE)
            except asyncio.CancelledError as exc:
                self._logger.warning(
                    "Compensation of step %s cancelled, continuing rollback",
                    step.name,
                    extra={"step": step.name},
                )
                cancelled = exc
                failures.append(StepFailure(step.name, exc))
                result.records.append(
                    StepRecord(step.name, StepPhase.COMPENSATE, StepOutcome.FAILED, exc)
                )
                continue
            except Exception as exc:
                self._logger.warning(
                    "Compensation of step %s failed: %s",
                    step.name,
                    exc,
                    extra={"step": step.name},
                )
                failures.append(StepFailure(step.name, exc))
                result.records.append(
                    StepRecord(step.name, StepPhase.COMPENSATE, StepOutcome.FAILED, exc)
                )
                continue

            self._logger.info("Rolled back step %s", step.name, extra={"step": step.name})
            result.records.append(
                StepRecord(step.name, StepPhase.COMPENSATE, StepOutcome.SUCCEEDED)
            )

        if failures:
            result.error = RollbackPartialFailure(failures, cause)
        if cancelled is not None:
            raise cancelled
