"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

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


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _placeholders(values: list[str]) -> str:
    return ", ".join("?" for _ in values)


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist execution history using SQLite.

    Calls run in worker threads; a lock serialises access to the shared
    connection so concurrent executions never interleave a write.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT,
                workflow_name TEXT,
                status TEXT NOT NULL,
                input TEXT NOT NULL,
                output TEXT,
                context TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                error TEXT,
                triggered_by TEXT,
                correlation_id TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_steps (
                id TEXT PRIMARY KEY,
                execution_id TEXT NOT NULL REFERENCES workflow_executions(id),
                step_name TEXT NOT NULL,
                step_index INTEGER NOT NULL,
                status TEXT NOT NULL,
                input TEXT,
                output TEXT,
                started_at TEXT,
                completed_at TEXT,
                duration_ms INTEGER,
                error TEXT,
                retry_count INTEGER NOT NULL DEFAULT 0,
                UNIQUE (execution_id, step_index)
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            try:
                cur = self._conn.cursor()
                cur.execute(query, params)
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                raise PersistenceError(str(exc)) from exc
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _insert_step(self, record: StepRecord) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "SELECT MAX(step_index) AS last FROM workflow_steps WHERE execution_id = ?",
                (record.execution_id,),
            )
            last = cur.fetchone()["last"]
            if last is not None and last >= record.step_index:
                raise PersistenceError(
                    f"step index {record.step_index} is not after {last} "
                    f"for execution {record.execution_id}"
                )
            try:
                cur.execute(
                    """
                    INSERT INTO workflow_steps (
                        id, execution_id, step_name, step_index, status, input,
                        output, started_at, completed_at, duration_ms, error, retry_count
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.execution_id,
                        record.step_name,
                        record.step_index,
                        record.status.value,
                        _dump(record.input),
                        _dump(record.output),
                        _ts(record.started_at),
                        _ts(record.completed_at),
                        record.duration_ms,
                        record.error,
                        record.retry_count,
                    ),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                raise PersistenceError(str(exc)) from exc

    def _reject(self, table: str, record_id: str, status: Any) -> None:
        row = self._fetchone(f"SELECT status FROM {table} WHERE id = ?", record_id)
        if row is None:
            raise PersistenceError(f"{record_id} does not exist in {table}")
        raise IllegalTransitionError(f"Illegal transition: {row['status']} -> {status.value}")

    @staticmethod
    def _execution_from_row(row: sqlite3.Row) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            workflow_name=row["workflow_name"],
            status=row["status"],
            input=json.loads(row["input"]),
            output=_load(row["output"]),
            context=json.loads(row["context"]),
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            error=row["error"],
            triggered_by=row["triggered_by"],
            correlation_id=row["correlation_id"],
        )

    @staticmethod
    def _step_from_row(row: sqlite3.Row) -> StepRecord:
        return StepRecord(
            id=row["id"],
            execution_id=row["execution_id"],
            step_name=row["step_name"],
            step_index=row["step_index"],
            status=row["status"],
            input=_load(row["input"]),
            output=_load(row["output"]),
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            duration_ms=row["duration_ms"],
            error=row["error"],
            retry_count=row["retry_count"],
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_execution(self, record: ExecutionRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_executions (
                id, workflow_id, workflow_name, status, input, output, context,
                started_at, completed_at, error, triggered_by, correlation_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            record.id,
            record.workflow_id,
            record.workflow_name,
            record.status.value,
            json.dumps(record.input),
            _dump(record.output),
            json.dumps(record.context),
            _ts(record.started_at),
            _ts(record.completed_at),
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
        sources = allowed_predecessors(status)
        updated = await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE workflow_executions
            SET status = ?,
                output = COALESCE(?, output),
                context = COALESCE(?, context),
                error = COALESCE(?, error),
                completed_at = COALESCE(?, completed_at)
            WHERE id = ? AND status IN ({_placeholders(sources)})
            """,
            status.value,
            _dump(output),
            _dump(context),
            error,
            _ts(completed_at),
            execution_id,
            *sources,
        )
        if not updated:
            await asyncio.to_thread(self._reject, "workflow_executions", execution_id, status)

    async def update_execution_context(self, execution_id: str, context: dict) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE workflow_executions SET context = ?
            WHERE id = ? AND status IN ({_placeholders(_OPEN_EXECUTION)})
            """,
            json.dumps(context),
            execution_id,
            *_OPEN_EXECUTION,
        )
        if not updated:
            raise PersistenceError(f"execution {execution_id} is not open for updates")

    async def create_step(self, record: StepRecord) -> None:
        await asyncio.to_thread(self._insert_step, record)

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
        sources = allowed_predecessors(status)
        updated = await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE workflow_steps
            SET status = ?,
                input = COALESCE(?, input),
                output = COALESCE(?, output),
                error = COALESCE(?, error),
                started_at = COALESCE(?, started_at),
                completed_at = COALESCE(?, completed_at),
                duration_ms = COALESCE(?, duration_ms),
                retry_count = COALESCE(?, retry_count)
            WHERE id = ? AND status IN ({_placeholders(sources)})
            """,
            status.value,
            _dump(input),
            _dump(output),
            error,
            _ts(started_at),
            _ts(completed_at),
            duration_ms,
            retry_count,
            step_id,
            *sources,
        )
        if not updated:
            await asyncio.to_thread(self._reject, "workflow_steps", step_id, status)

    async def increment_step_retry(self, step_id: str) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE workflow_steps SET retry_count = retry_count + 1
            WHERE id = ? AND status IN ({_placeholders(_OPEN_STEP)})
            """,
            step_id,
            *_OPEN_STEP,
        )
        if not updated:
            raise PersistenceError(f"step {step_id} is not open for updates")

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM workflow_executions WHERE id = ?",
            execution_id,
        )
        return self._execution_from_row(row) if row else None

    async def get_execution_steps(self, execution_id: str) -> list[StepRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM workflow_steps WHERE execution_id = ? ORDER BY step_index",
            execution_id,
        )
        return [self._step_from_row(r) for r in rows]

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM workflow_executions ORDER BY started_at DESC LIMIT ?",
            limit,
        )
        return [self._execution_from_row(r) for r in rows]
