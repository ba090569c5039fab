"""Workflow orchestrator: drives one execution through its steps."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .conditions import ConditionEvaluator
from .config import EngineConfig
from .context import ExecutionContext
from .contracts import StepDefinition, WorkflowDefinition
from .dispatch import StepDispatcher
from .errors import (
    ExecutionCancelledError,
    ExpressionSyntaxError,
    GateRejectedError,
    PersistenceError,
    StepExecutionError,
    UnresolvedVariableError,
    WorkflowTimeoutError,
    describe_error,
)
from .gates import DecisionGate, consult_gate
from .persistence.models import (
    ExecutionRecord,
    ExecutionStatus,
    StepRecord,
    StepStatus,
    derive_execution_status,
    ensure_transition,
    utcnow,
)
from .persistence.repository import WorkflowRepository
from .resolver import VariableResolver
from .retry import RetryController, effective_policy
from .tools import ToolInvoker
from .utils.retry import Sleep, wait_or_cancel

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Final in-memory state of an execution."""

    execution: ExecutionRecord
    steps: List[StepRecord]
    warnings: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def execution_id(self) -> str:
        return self.execution.id

    @property
    def status(self) -> ExecutionStatus:
        return self.execution.status

    @property
    def output(self) -> Dict[str, Any]:
        return self.execution.output or {}

    def step(self, name: str) -> Optional[StepRecord]:
        return next((s for s in self.steps if s.step_name == name), None)


class _Run:
    """Mutable state of one execution. Never shared between executions."""

    def __init__(self, execution: ExecutionRecord, context: ExecutionContext, persist: bool):
        self.execution = execution
        self.context = context
        self.persist = persist
        self.steps: List[StepRecord] = []
        self.warnings: List[str] = []
        self.last_error: Optional[BaseException] = None
        self.cancel_event = asyncio.Event()
        self.clock_start = asyncio.get_running_loop().time()

    def elapsed_ms(self, since: float) -> int:
        return int((asyncio.get_running_loop().time() - since) * 1000)


class WorkflowOrchestrator:
    """Run workflow definitions step by step.

    Steps run strictly in order, one at a time. Each step is guarded by its
    ``if`` condition, has its parameters resolved against the execution
    context, is optionally cleared by the decision gate and is then
    dispatched through the retry controller. Persistence is best effort:
    when the repository fails the execution carries on in memory and the
    failure is reported as a warning.
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        repository: WorkflowRepository | None = None,
        decision_gate: DecisionGate | None = None,
        config: EngineConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config or EngineConfig()
        self._repository = repository if self._config.persistence_enabled else None
        self._gate = decision_gate
        self._retry = RetryController(
            StepDispatcher(invoker), sleep=sleep, jitter_ms=self._config.retry.jitter_ms
        )
        self._resolver = VariableResolver()
        self._conditions = ConditionEvaluator()
        self._active: Dict[str, asyncio.Event] = {}

    # ------------------------------------------------------------------
    # Public API
    def cancel(self, execution_id: str) -> bool:
        """Request cancellation of a running execution.

        Observed at the next step boundary, during a backoff delay, or while
        the current tool call is in flight (the call is cancelled if the tool
        supports it).
        """
        event = self._active.get(execution_id)
        if event is None:
            return False
        logger.info(f"Cancellation requested for execution {execution_id}")
        event.set()
        return True

    async def execute(
        self,
        workflow: WorkflowDefinition,
        input: Optional[Mapping[str, Any]] = None,
        repo: Optional[Mapping[str, Any]] = None,
        *,
        workflow_id: Optional[str] = None,
        triggered_by: Optional[str] = None,
        correlation_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> ExecutionResult:
        """Run ``workflow`` to a terminal status and return its final state."""
        context = ExecutionContext(input=input, repo=repo)
        snapshot = context.snapshot()
        execution = ExecutionRecord(
            id=execution_id or str(uuid.uuid4()),
            workflow_id=workflow_id,
            workflow_name=workflow.name,
            input=snapshot["input"],
            context=snapshot,
            triggered_by=triggered_by,
            correlation_id=correlation_id,
        )
        if execution.id in self._active:
            raise ValueError(f"execution {execution.id} is already running")

        run = _Run(execution, context, persist=self._repository is not None)
        self._active[execution.id] = run.cancel_event
        try:
            return await self._drive(workflow, run)
        finally:
            self._active.pop(execution.id, None)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        if self._repository is None:
            return None
        return await self._repository.get_execution(execution_id)

    async def get_execution_steps(self, execution_id: str) -> list[StepRecord]:
        if self._repository is None:
            return []
        return await self._repository.get_execution_steps(execution_id)

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        if self._repository is None:
            return []
        return await self._repository.list_executions(limit)

    # ------------------------------------------------------------------
    # Execution loop
    async def _drive(self, workflow: WorkflowDefinition, run: _Run) -> ExecutionResult:
        execution_id = run.execution.id
        timeout_ms = workflow.config.timeout_ms or self._config.default_timeout_ms
        deadline = run.clock_start + timeout_ms / 1000

        if run.persist and not await self._persist(run, "create_execution", run.execution):
            run.persist = False
            self._warn(run, f"Execution {execution_id} continues without persistence")
        await self._set_execution_status(run, ExecutionStatus.RUNNING)

        logger.info(
            f"Starting execution {execution_id} of workflow {workflow.name} "
            f"({len(workflow.steps)} steps, timeout {timeout_ms}ms)",
            extra={"execution_id": execution_id},
        )

        interruption: Optional[BaseException] = None
        cancelled = False
        try:
            for index, step in enumerate(workflow.steps):
                self._check_boundary(run, deadline, timeout_ms)
                record = await self._run_step(run, workflow, index, step, deadline, timeout_ms)
                if record.status is StepStatus.FAILED:
                    if not workflow.config.continue_on_error:
                        logger.error(f"Step {step.name} failed, stopping workflow")
                        break
                    logger.warning(f"Step {step.name} failed, continuing due to continueOnError")
        except ExecutionCancelledError as exc:
            interruption, cancelled = exc, True
        except WorkflowTimeoutError as exc:
            interruption = exc
        except asyncio.CancelledError:
            await self._finish(
                run,
                workflow,
                ExecutionCancelledError("execution task was cancelled"),
                cancelled=True,
            )
            raise
        except Exception as exc:
            logger.exception(f"Execution {execution_id} failed unexpectedly")
            interruption = exc

        return await self._finish(run, workflow, interruption, cancelled)

    def _check_boundary(self, run: _Run, deadline: float, timeout_ms: int) -> None:
        if run.cancel_event.is_set():
            raise ExecutionCancelledError("execution cancelled")
        if asyncio.get_running_loop().time() >= deadline:
            raise WorkflowTimeoutError(timeout_ms)

    async def _run_step(
        self,
        run: _Run,
        workflow: WorkflowDefinition,
        index: int,
        step: StepDefinition,
        deadline: float,
        timeout_ms: int,
    ) -> StepRecord:
        record = StepRecord(
            id=str(uuid.uuid4()),
            execution_id=run.execution.id,
            step_name=step.name,
            step_index=index,
        )
        run.steps.append(record)
        await self._persist(run, "create_step", record)
        logger.info(
            f"Executing step {index + 1}/{len(workflow.steps)}: {step.name}",
            extra={"execution_id": run.execution.id, "step": step.name},
        )

        if step.condition is not None and not self._conditions.evaluate(
            step.condition, run.context
        ):
            logger.info(f"Skipping step {step.name} (condition not met: {step.condition})")
            now = utcnow()
            await self._update_step(
                run, record, StepStatus.SKIPPED, started_at=now, completed_at=now, duration_ms=0
            )
            return record

        started_at = utcnow()
        clock = asyncio.get_running_loop().time()
        try:
            params = self._resolver.resolve(step.params, run.context, step.name)
            if step.gate is not None:
                signals = self._resolver.resolve(step.gate, run.context, step.name)
                await self._check_gate(run, step, signals, deadline, timeout_ms)
        except (UnresolvedVariableError, ExpressionSyntaxError, GateRejectedError) as exc:
            logger.error(f"Step {step.name} cannot start: {exc}")
            run.last_error = exc
            await self._update_step(
                run,
                record,
                StepStatus.FAILED,
                error=describe_error(exc),
                started_at=started_at,
                completed_at=utcnow(),
                duration_ms=run.elapsed_ms(clock),
            )
            return record

        await self._update_step(
            run, record, StepStatus.RUNNING, input=params, started_at=started_at
        )

        async def on_retry(attempt: int) -> None:
            record.retry_count = attempt - 1
            await self._persist(run, "increment_step_retry", record.id)

        policy = effective_policy(
            step,
            workflow.config,
            self._config.retry.backoff,
            self._config.retry.base_delay_ms,
        )
        remaining = max(deadline - asyncio.get_running_loop().time(), 0)
        try:
            outcome = await asyncio.wait_for(
                self._retry.run(step, params, policy, run.cancel_event, on_retry),
                timeout=remaining,
            )
        except StepExecutionError as exc:
            run.last_error = exc
            await self._fail_running_step(run, record, exc, clock, retry_count=exc.attempt - 1)
            return record
        except ExecutionCancelledError as exc:
            await self._fail_running_step(run, record, exc, clock)
            raise
        except asyncio.TimeoutError:
            exc = WorkflowTimeoutError(timeout_ms, step.name)
            logger.error(f"Execution {run.execution.id} timed out during step {step.name}")
            await self._fail_running_step(run, record, exc, clock)
            raise exc
        except asyncio.CancelledError:
            await self._fail_running_step(
                run, record, ExecutionCancelledError("execution task was cancelled"), clock
            )
            raise

        if step.assign:
            run.context.set(step.assign, outcome.output)
        await self._update_step(
            run,
            record,
            StepStatus.COMPLETED,
            output=outcome.output,
            completed_at=utcnow(),
            duration_ms=run.elapsed_ms(clock),
            retry_count=outcome.attempts - 1,
        )
        if step.assign:
            await self._persist(
                run, "update_execution_context", run.execution.id, run.context.snapshot()
            )
        logger.info(
            f"Step {step.name} completed ({record.duration_ms}ms, {outcome.attempts} attempt(s))"
        )
        return record

    async def _check_gate(
        self,
        run: _Run,
        step: StepDefinition,
        signals: Dict[str, Any],
        deadline: float,
        timeout_ms: int,
    ) -> None:
        """Consult the decision gate within the execution's remaining budget."""
        if self._gate is None:
            raise GateRejectedError(step.name, "no decision gate is configured")
        loop = asyncio.get_running_loop()
        try:
            decision = await asyncio.wait_for(
                wait_or_cancel(consult_gate(self._gate, signals), run.cancel_event),
                timeout=max(deadline - loop.time(), 0),
            )
        except asyncio.TimeoutError:
            if loop.time() < deadline:
                raise
            logger.error(
                f"Execution {run.execution.id} timed out waiting for the gate of {step.name}"
            )
            raise WorkflowTimeoutError(timeout_ms, step.name)
        logger.info(
            f"Decision gate for step {step.name}: "
            f"{'allowed' if decision.allowed else 'rejected'} {decision.reason}".rstrip()
        )
        if not decision.allowed:
            raise GateRejectedError(step.name, decision.reason or "rejected")

    async def _fail_running_step(
        self,
        run: _Run,
        record: StepRecord,
        exc: BaseException,
        clock: float,
        retry_count: Optional[int] = None,
    ) -> None:
        await self._update_step(
            run,
            record,
            StepStatus.FAILED,
            error=describe_error(exc),
            completed_at=utcnow(),
            duration_ms=run.elapsed_ms(clock),
            retry_count=retry_count,
        )

    async def _finish(
        self,
        run: _Run,
        workflow: WorkflowDefinition,
        interruption: Optional[BaseException],
        cancelled: bool,
    ) -> ExecutionResult:
        if interruption is not None:
            for record in run.steps:
                if not record.status.is_terminal:
                    await self._update_step(
                        run,
                        record,
                        StepStatus.FAILED,
                        error=describe_error(interruption),
                        completed_at=utcnow(),
                    )
        status = derive_execution_status(
            (s.status for s in run.steps),
            workflow.config.continue_on_error,
            interruption,
            cancelled,
        )
        failure = interruption or (run.last_error if status is ExecutionStatus.FAILED else None)
        snapshot = run.context.snapshot()
        await self._set_execution_status(
            run,
            status,
            output=snapshot["variables"],
            context=snapshot,
            error=describe_error(failure) if failure else None,
            completed_at=utcnow(),
        )
        logger.info(
            f"Execution {run.execution.id} {status.value}",
            extra={"execution_id": run.execution.id},
        )
        return ExecutionResult(
            execution=run.execution,
            steps=list(run.steps),
            warnings=list(run.warnings),
            error=failure,
        )

    # ------------------------------------------------------------------
    # State transitions
    async def _set_execution_status(
        self, run: _Run, status: ExecutionStatus, **fields: Any
    ) -> None:
        ensure_transition(run.execution.status, status)
        updates = {key: value for key, value in fields.items() if value is not None}
        run.execution = run.execution.model_copy(update={"status": status, **updates})
        await self._persist(run, "update_execution_status", run.execution.id, status, **fields)

    async def _update_step(
        self, run: _Run, record: StepRecord, status: StepStatus, **fields: Any
    ) -> None:
        ensure_transition(record.status, status)
        record.status = status
        for key, value in fields.items():
            if value is not None:
                setattr(record, key, value)
        await self._persist(run, "update_step", record.id, status, **fields)

    async def _persist(self, run: _Run, operation: str, *args: Any, **kwargs: Any) -> bool:
        """Call a repository operation; failures become warnings, never errors."""
        if not run.persist or self._repository is None:
            return False
        method = getattr(self._repository, operation)
        try:
            await asyncio.wait_for(
                method(*args, **kwargs),
                timeout=self._config.persistence_timeout_ms / 1000,
            )
        except Exception as exc:
            error = exc if isinstance(exc, PersistenceError) else PersistenceError(describe_error(exc))
            self._warn(run, f"{operation} failed for execution {run.execution.id}: {error}")
            return False
        return True

    def _warn(self, run: _Run, message: str) -> None:
        logger.warning(message, extra={"execution_id": run.execution.id})
        run.warnings.append(message)
