import uuid
from datetime import timedelta

import pytest

from flowplane.errors import IllegalTransitionError, PersistenceError
from flowplane.persistence import (
    ExecutionRecord,
    ExecutionStatus,
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    StepRecord,
    StepStatus,
)
from flowplane.persistence.models import utcnow


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        yield InMemoryWorkflowRepository()
    else:
        repository = SQLiteWorkflowRepository(tmp_path / "executions.db")
        yield repository
        repository.close()


def _execution(**overrides):
    fields = dict(
        id=str(uuid.uuid4()),
        workflow_id="wf.yaml",
        workflow_name="review",
        input={"pr": 1},
        context={"input": {"pr": 1}, "repo": {}, "variables": {}},
        triggered_by="webhook",
        correlation_id="corr-1",
    )
    fields.update(overrides)
    return ExecutionRecord(**fields)


def _step(execution_id, index, name=None):
    return StepRecord(
        id=str(uuid.uuid4()),
        execution_id=execution_id,
        step_name=name or f"step{index}",
        step_index=index,
    )


@pytest.mark.asyncio
async def test_execution_round_trip(repo):
    record = _execution()
    await repo.create_execution(record)
    await repo.update_execution_status(record.id, ExecutionStatus.RUNNING)

    step = _step(record.id, 0, "fetch")
    await repo.create_step(step)
    started = utcnow()
    await repo.update_step(step.id, StepStatus.RUNNING, input={"n": 1}, started_at=started)
    await repo.increment_step_retry(step.id)
    await repo.update_step(
        step.id,
        StepStatus.COMPLETED,
        output={"title": "Fix"},
        completed_at=utcnow(),
        duration_ms=12,
    )
    context = {"input": {"pr": 1}, "repo": {}, "variables": {"pr": {"title": "Fix"}}}
    await repo.update_execution_context(record.id, context)
    await repo.update_execution_status(
        record.id,
        ExecutionStatus.COMPLETED,
        output={"pr": {"title": "Fix"}},
        completed_at=utcnow(),
    )

    stored = await repo.get_execution(record.id)
    assert stored.status is ExecutionStatus.COMPLETED
    assert stored.output == {"pr": {"title": "Fix"}}
    assert stored.context == context
    assert stored.triggered_by == "webhook"
    assert stored.correlation_id == "corr-1"
    assert stored.completed_at is not None

    steps = await repo.get_execution_steps(record.id)
    assert len(steps) == 1
    assert steps[0].status is StepStatus.COMPLETED
    assert steps[0].input == {"n": 1}
    assert steps[0].output == {"title": "Fix"}
    assert steps[0].retry_count == 1
    assert steps[0].duration_ms == 12
    assert steps[0].started_at == started


@pytest.mark.asyncio
async def test_terminal_status_cannot_regress(repo):
    record = _execution()
    await repo.create_execution(record)
    await repo.update_execution_status(record.id, ExecutionStatus.RUNNING)
    await repo.update_execution_status(record.id, ExecutionStatus.FAILED, error="Boom: x")

    with pytest.raises(IllegalTransitionError):
        await repo.update_execution_status(record.id, ExecutionStatus.RUNNING)
    with pytest.raises(IllegalTransitionError):
        await repo.update_execution_status(record.id, ExecutionStatus.COMPLETED)
    with pytest.raises(PersistenceError):
        await repo.update_execution_context(record.id, {})

    stored = await repo.get_execution(record.id)
    assert stored.status is ExecutionStatus.FAILED
    assert stored.error == "Boom: x"


@pytest.mark.asyncio
async def test_step_state_machine_enforced(repo):
    record = _execution()
    await repo.create_execution(record)
    step = _step(record.id, 0)
    await repo.create_step(step)
    await repo.update_step(step.id, StepStatus.SKIPPED)

    with pytest.raises(IllegalTransitionError):
        await repo.update_step(step.id, StepStatus.RUNNING)
    with pytest.raises(PersistenceError):
        await repo.increment_step_retry(step.id)


@pytest.mark.asyncio
async def test_step_indexes_must_increase(repo):
    record = _execution()
    await repo.create_execution(record)
    await repo.create_step(_step(record.id, 0))
    await repo.create_step(_step(record.id, 2))
    with pytest.raises(PersistenceError):
        await repo.create_step(_step(record.id, 1))
    steps = await repo.get_execution_steps(record.id)
    assert [s.step_index for s in steps] == [0, 2]


@pytest.mark.asyncio
async def test_duplicate_ids_and_unknown_records(repo):
    record = _execution()
    await repo.create_execution(record)
    with pytest.raises(PersistenceError):
        await repo.create_execution(record)
    with pytest.raises(PersistenceError):
        await repo.update_execution_status("missing", ExecutionStatus.RUNNING)
    with pytest.raises(PersistenceError):
        await repo.update_step("missing", StepStatus.RUNNING)
    assert await repo.get_execution("missing") is None
    assert await repo.get_execution_steps("missing") == []


@pytest.mark.asyncio
async def test_list_executions_newest_first(repo):
    now = utcnow()
    first = _execution(started_at=now - timedelta(seconds=5))
    second = _execution(started_at=now)
    await repo.create_execution(first)
    await repo.create_execution(second)

    listed = await repo.list_executions(limit=10)
    assert [e.id for e in listed][:2] == [second.id, first.id]
    assert len(await repo.list_executions(limit=1)) == 1


@pytest.mark.asyncio
async def test_returned_records_are_copies(repo):
    record = _execution()
    await repo.create_execution(record)
    fetched = await repo.get_execution(record.id)
    fetched.input["pr"] = 999
    assert (await repo.get_execution(record.id)).input == {"pr": 1}
