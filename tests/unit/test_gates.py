import pytest

from flowplane.gates import GateDecision, consult_gate


class SyncGate:
    def evaluate(self, signals):
        return {"allowed": signals.get("verdict") != "RED", "reason": signals.get("verdict", "")}


class AsyncGate:
    async def evaluate(self, signals):
        return GateDecision(allowed=True)


@pytest.mark.asyncio
async def test_sync_gate_returning_mapping():
    decision = await consult_gate(SyncGate(), {"verdict": "RED"})
    assert decision == GateDecision(allowed=False, reason="RED")


@pytest.mark.asyncio
async def test_async_gate():
    decision = await consult_gate(AsyncGate(), {})
    assert decision.allowed is True
    assert decision.reason == ""
