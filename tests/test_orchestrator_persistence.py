"""Orchestrator behaviour when the execution store misbehaves."""

import asyncio

import pytest

from flowplane import EngineConfig, ExecutionStatus, WorkflowOrchestrator, parse_workflow
from flowplane.errors import PersistenceError
from flowplane.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository


class UnavailableRepository(InMemoryWorkflowRepository):
    async def create_execution(self, record):
        raise ConnectionRefusedError("database is down")


class FlakyStepRepository(InMemoryWorkflowRepository):
    async def update_step(self, step_id, status, **fields):
        raise PersistenceError("disk full")


class HangingRepository(InMemoryWorkflowRepository):
    async def update_execution_status(self, execution_id, status, **fields):
        await asyncio.sleep(10)


def _workflow():
    return parse_workflow(
        {
            "name": "two-steps",
            "steps": [
                {"name": "a", "tool": "svc.value", "params": {"v": 1}, "assign": "a"},
                {"name": "b", "tool": "svc.value", "params": {"v": "${variables.a}"}, "assign": "b"},
            ],
        }
    )


@pytest.fixture
def value_registry(registry):
    registry.register("svc.value", lambda params: params["v"])
    return registry


@pytest.mark.asyncio
async def test_unavailable_store_still_completes_with_warning(value_registry):
    repository = UnavailableRepository()
    result = await WorkflowOrchestrator(value_registry, repository=repository).execute(_workflow())

    assert result.status is ExecutionStatus.COMPLETED
    assert result.output == {"a": 1, "b": 1}
    assert any("create_execution failed" in w for w in result.warnings)
    assert any("continues without persistence" in w for w in result.warnings)
    # persistence switched off after the failed create
    assert await repository.list_executions() == []


@pytest.mark.asyncio
async def test_failed_step_writes_become_warnings(value_registry):
    repository = FlakyStepRepository()
    result = await WorkflowOrchestrator(value_registry, repository=repository).execute(_workflow())

    assert result.status is ExecutionStatus.COMPLETED
    assert any("update_step failed" in w and "disk full" in w for w in result.warnings)
    stored = await repository.get_execution(result.execution_id)
    assert stored.status is ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_slow_store_is_bounded_by_persistence_timeout(value_registry):
    config = EngineConfig(persistence_timeout_ms=20)
    orchestrator = WorkflowOrchestrator(
        value_registry, repository=HangingRepository(), config=config
    )
    result = await asyncio.wait_for(orchestrator.execute(_workflow()), timeout=5)

    assert result.status is ExecutionStatus.COMPLETED
    assert any("update_execution_status failed" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_persistence_disabled_in_config(value_registry):
    repository = InMemoryWorkflowRepository()
    orchestrator = WorkflowOrchestrator(
        value_registry,
        repository=repository,
        config=EngineConfig(persistence_enabled=False),
    )
    result = await orchestrator.execute(_workflow())

    assert result.status is ExecutionStatus.COMPLETED
    assert result.warnings == []
    assert await repository.list_executions() == []


@pytest.mark.asyncio
async def test_history_survives_in_sqlite(value_registry, tmp_path):
    db_path = tmp_path / "flowplane.db"
    repository = SQLiteWorkflowRepository(db_path)
    orchestrator = WorkflowOrchestrator(value_registry, repository=repository)
    result = await orchestrator.execute(_workflow(), input={"x": 1}, correlation_id="c-1")
    repository.close()

    reopened = SQLiteWorkflowRepository(db_path)
    stored = await reopened.get_execution(result.execution_id)
    steps = await reopened.get_execution_steps(result.execution_id)
    reopened.close()

    assert stored.status is ExecutionStatus.COMPLETED
    assert stored.output == {"a": 1, "b": 1}
    assert stored.correlation_id == "c-1"
    assert [s.step_name for s in steps] == ["a", "b"]
    assert [s.output for s in steps] == [1, 1]
