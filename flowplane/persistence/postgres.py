"""PostgreSQL implementation of the execution repository."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..errors import IllegalTransitionError, PersistenceError
from .models import (
    ExecutionRecord,
    ExecutionStatus,
    StepRecord,
    StepStatus,
    allowed_predecessors,
)
from .repository import WorkflowRepository

_OPEN_EXECUTION = [ExecutionStatus.PENDING.value, ExecutionStatus.RUNNING.value]
_OPEN_STEP = [StepStatus.PENDING.value, StepStatus.RUNNING.value]


def _dump(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value)


def _load(value: Optional[str]) -> Any:
    return None if value is None else json.loads(value)


def _affected(status: str) -> int:
    """Row count from an asyncpg command tag such as ``UPDATE 1``."""
    return int(status.split()[-1])


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist execution history using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT,
                workflow_name TEXT,
                status TEXT NOT NULL,
                input JSONB NOT NULL,
                output JSONB,
                context JSONB NOT NULL,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                error TEXT,
                triggered_by TEXT,
                correlation_id TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_steps (
                id TEXT PRIMARY KEY,
                execution_id TEXT NOT NULL REFERENCES workflow_executions(id),
                step_name TEXT NOT NULL,
                step_index INTEGER NOT NULL,
                status TEXT NOT NULL,
                input JSONB,
                output JSONB,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                duration_ms INTEGER,
                error TEXT,
                retry_count INTEGER NOT NULL DEFAULT 0,
                UNIQUE (execution_id, step_index)
            )
            """
        )

    async def _write(self, query: str, *args: Any) -> int:
        conn = await self._connect()
        try:
            return _affected(await conn.execute(query, *args))
        except asyncpg.UniqueViolationError as exc:
            raise PersistenceError(str(exc)) from exc
        except asyncpg.ForeignKeyViolationError as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            await conn.close()

    async def _reject(self, table: str, record_id: str, status: Any) -> None:
        conn = await self._connect()
        try:
            current = await conn.fetchval(f"SELECT status FROM {table} WHERE id = $1", record_id)
        finally:
            await conn.close()
        if current is None:
            raise PersistenceError(f"{record_id} does not exist in {table}")
        raise IllegalTransitionError(f"Illegal transition: {current} -> {status.value}")

    @staticmethod
    def _execution_from_row(row: asyncpg.Record) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            workflow_name=row["workflow_name"],
            status=row["status"],
            input=json.loads(row["input"]),
            output=_load(row["output"]),
            context=json.loads(row["context"]),
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            error=row["error"],
            triggered_by=row["triggered_by"],
            correlation_id=row["correlation_id"],
        )

    @staticmethod
    def _step_from_row(row: asyncpg.Record) -> StepRecord:
        return StepRecord(
            id=row["id"],
            execution_id=row["execution_id"],
            step_name=row["step_name"],
            step_index=row["step_index"],
            status=row["status"],
            input=_load(row["input"]),
            output=_load(row["output"]),
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            duration_ms=row["duration_ms"],
            error=row["error"],
            retry_count=row["retry_count"],
        )

    # ------------------------------------------------------------------
    async def create_execution(self, record: ExecutionRecord) -> None:
        await self._write(
            """
            INSERT INTO workflow_executions (
                id, workflow_id, workflow_name, status, input, output, context,
                started_at, completed_at, error, triggered_by, correlation_id
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            """,
            record.id,
            record.workflow_id,
            record.workflow_name,
            record.status.value,
            json.dumps(record.input),
            _dump(record.output),
            json.dumps(record.context),
            record.started_at,
            record.completed_at,
            record.error,
            record.triggered_by,
            record.correlation_id,
        )

    async def update_execution_status(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        output: Optional[dict] = None,
        context: Optional[dict] = None,
        error: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        updated = await self._write(
            """
            UPDATE workflow_executions
            SET status = $1,
                output = COALESCE($2::jsonb, output),
                context = COALESCE($3::jsonb, context),
                error = COALESCE($4, error),
                completed_at = COALESCE($5, completed_at)
            WHERE id = $6 AND status = ANY($7::text[])
            """,
            status.value,
            _dump(output),
            _dump(context),
            error,
            completed_at,
            execution_id,
            allowed_predecessors(status),
        )
        if not updated:
            await self._reject("workflow_executions", execution_id, status)

    async def update_execution_context(self, execution_id: str, context: dict) -> None:
        updated = await self._write(
            """
            UPDATE workflow_executions SET context = $1::jsonb
            WHERE id = $2 AND status = ANY($3::text[])
            """,
            json.dumps(context),
            execution_id,
            _OPEN_EXECUTION,
        )
        if not updated:
            raise PersistenceError(f"execution {execution_id} is not open for updates")

    async def create_step(self, record: StepRecord) -> None:
        inserted = await self._write(
            """
            INSERT INTO workflow_steps (
                id, execution_id, step_name, step_index, status, input, output,
                started_at, completed_at, duration_ms, error, retry_count
            )
            SELECT $1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8, $9, $10, $11, $12
            WHERE NOT EXISTS (
                SELECT 1 FROM workflow_steps WHERE execution_id = $2 AND step_index >= $4
            )
            """,
            record.id,
            record.execution_id,
            record.step_name,
            record.step_index,
            record.status.value,
            _dump(record.input),
            _dump(record.output),
            record.started_at,
            record.completed_at,
            record.duration_ms,
            record.error,
            record.retry_count,
        )
        if not inserted:
            raise PersistenceError(
                f"step index {record.step_index} is not after the last recorded step "
                f"of execution {record.execution_id}"
            )

    async def update_step(
        self,
        step_id: str,
        status: StepStatus,
        *,
        input: Any = None,
        output: Any = None,
        error: Optional[str] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        duration_ms: Optional[int] = None,
        retry_count: Optional[int] = None,
    ) -> None:
        updated = await self._write(
            """
            UPDATE workflow_steps
            SET status = $1,
                input = COALESCE($2::jsonb, input),
                output = COALESCE($3::jsonb, output),
                error = COALESCE($4, error),
                started_at = COALESCE($5, started_at),
                completed_at = COALESCE($6, completed_at),
                duration_ms = COALESCE($7, duration_ms),
                retry_count = COALESCE($8, retry_count)
            WHERE id = $9 AND status = ANY($10::text[])
            """,
            status.value,
            _dump(input),
            _dump(output),
            error,
            started_at,
            completed_at,
            duration_ms,
            retry_count,
            step_id,
            allowed_predecessors(status),
        )
        if not updated:
            await self._reject("workflow_steps", step_id, status)

    async def increment_step_retry(self, step_id: str) -> None:
        updated = await self._write(
            """
            UPDATE workflow_steps SET retry_count = retry_count + 1
            WHERE id = $1 AND status = ANY($2::text[])
            """,
            step_id,
            _OPEN_STEP,
        )
        if not updated:
            raise PersistenceError(f"step {step_id} is not open for updates")

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM workflow_executions WHERE id = $1", execution_id
            )
        finally:
            await conn.close()
        return self._execution_from_row(row) if row else None

    async def get_execution_steps(self, execution_id: str) -> list[StepRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM workflow_steps WHERE execution_id = $1 ORDER BY step_index",
                execution_id,
            )
        finally:
            await conn.close()
        return [self._step_from_row(r) for r in rows]

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM workflow_executions ORDER BY started_at DESC LIMIT $1",
                limit,
            )
        finally:
            await conn.close()
        return [self._execution_from_row(r) for r in rows]
