"""Decision gate interface consulted before gated steps run."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Dict, Protocol, Union

from pydantic import BaseModel


class GateDecision(BaseModel):
    """Verdict returned by a decision gate."""

    allowed: bool
    reason: str = ""


class DecisionGate(Protocol):
    """External approval capability, e.g. a deployment verdict engine.

    ``evaluate`` may be a plain or a coroutine function.
    """

    def evaluate(
        self, signals: Dict[str, Any]
    ) -> Union[GateDecision, Awaitable[GateDecision]]:
        """Return whether the step carrying ``signals`` may proceed."""


async def consult_gate(gate: DecisionGate, signals: Dict[str, Any]) -> GateDecision:
    decision = gate.evaluate(signals)
    if inspect.isawaitable(decision):
        decision = await decision
    if isinstance(decision, dict):
        decision = GateDecision(**decision)
    return decision
