"""Example showing how to embed the orchestrator with a decision gate."""

import asyncio
import sys
from pathlib import Path

from flowplane import GateDecision, REGISTRY, WorkflowOrchestrator, get_repository, load_workflow
from flowplane.log import configure_logging

sys.path.insert(0, str(Path(__file__).parent))
import review_tools  # noqa: E402,F401  registers the tools


class FileCountGate:
    """Block deployments touching more than ``limit`` files."""

    def __init__(self, limit=5):
        self.limit = limit

    def evaluate(self, signals):
        files = signals.get("changedFiles") or []
        if len(files) > self.limit:
            return GateDecision(allowed=False, reason=f"{len(files)} files changed")
        return GateDecision(allowed=True)


async def main():
    configure_logging("INFO")
    workflow = load_workflow(Path(__file__).parent / "pr_review.yaml")
    orchestrator = WorkflowOrchestrator(
        REGISTRY, repository=get_repository(), decision_gate=FileCountGate()
    )

    result = await orchestrator.execute(
        workflow,
        input={"pr": 42, "postComment": True},
        repo={"fullName": "acme/api"},
        triggered_by="example",
    )
    print(f"Execution {result.execution_id}: {result.status.value}")
    for step in result.steps:
        print(f"- {step.step_name}: {step.status.value}")
    print(f"Output: {result.output}")


if __name__ == "__main__":
    asyncio.run(main())
