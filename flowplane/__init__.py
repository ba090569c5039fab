"""flowplane: sequential, persisted workflow execution for tool pipelines."""

from .config import EngineConfig, FlowplaneConfig, load_config
from .context import MISSING, ExecutionContext
from .contracts import RetryPolicy, StepDefinition, WorkflowConfig, WorkflowDefinition
from .gates import DecisionGate, GateDecision
from .orchestrator import ExecutionResult, WorkflowOrchestrator
from .parser import load_workflow, parse_workflow
from .persistence import ExecutionRecord, ExecutionStatus, StepRecord, StepStatus, get_repository
from .tools import REGISTRY, ToolInvoker, ToolRegistry, register_tool

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    "FlowplaneConfig",
    "load_config",
    "MISSING",
    "ExecutionContext",
    "RetryPolicy",
    "StepDefinition",
    "WorkflowConfig",
    "WorkflowDefinition",
    "DecisionGate",
    "GateDecision",
    "ExecutionResult",
    "WorkflowOrchestrator",
    "load_workflow",
    "parse_workflow",
    "ExecutionRecord",
    "ExecutionStatus",
    "StepRecord",
    "StepStatus",
    "get_repository",
    "REGISTRY",
    "ToolInvoker",
    "ToolRegistry",
    "register_tool",
]
