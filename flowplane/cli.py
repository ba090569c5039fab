"""Command line interface for validating and running flowplane workflows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from flowplane import (
    REGISTRY,
    ExecutionResult,
    ExecutionStatus,
    WorkflowOrchestrator,
    get_repository,
    load_config,
    load_workflow,
    parse_workflow,
)
from flowplane.cli_utils.fs import _format_display_path, _iter_workflow_files
from flowplane.cli_utils.tools import _load_tools_module
from flowplane.errors import SchemaValidationError
from flowplane.log import configure_logging
from flowplane.persistence import WorkflowRepository

app = typer.Typer(help="CLI for flowplane workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for validating and running workflows")
execution_app = typer.Typer(help="Commands for inspecting recorded executions")
tools_app = typer.Typer(help="Commands for inspecting registered tools")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(tools_app, name="tools")

_TOOLS_OPTION_HELP = "Module name or .py file registering tools (repeatable)"
_CONFIG_OPTION_HELP = "flowplane.yaml to use instead of FLOWPLANE_CONFIG"


@app.callback()
def main() -> None:
    """flowplane CLI entry point."""
    pass


def _parse_json_object(raw: Optional[str], option: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"invalid JSON: {exc.msg}", param_hint=option)
    if not isinstance(value, dict):
        raise typer.BadParameter("must be a JSON object", param_hint=option)
    return value


def _load_tools(targets: Optional[List[str]]) -> None:
    for target in targets or []:
        try:
            _load_tools_module(target)
        except (ImportError, FileNotFoundError) as exc:
            typer.secho(f"Cannot load tools from {target}: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1)


def _repository(config_path: Optional[Path]) -> WorkflowRepository:
    """Repository named by the given config file, or by the default lookup."""
    if config_path is None:
        return get_repository()
    return get_repository(config=load_config(str(config_path)))


def _echo_validation_error(path: Path, exc: SchemaValidationError) -> None:
    typer.secho(f"{path} is not a valid workflow", fg=typer.colors.RED)
    for field_path, message in exc.errors:
        typer.echo(f"  {field_path or '<document>'}: {message}")


@workflow_app.command("validate")
def workflow_validate(workflow_path: Path) -> None:
    """
    Validate a workflow document without running it.

    Checks structure, tool references, step name uniqueness and the syntax of
    every ``${...}`` template.

    Example:
        flowplane workflow validate ./workflows/deploy.yaml
        # Output: deploy is valid (3 steps)
    """
    try:
        workflow = load_workflow(workflow_path)
    except FileNotFoundError:
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except SchemaValidationError as exc:
        _echo_validation_error(workflow_path, exc)
        raise typer.Exit(code=1)
    typer.echo(f"{workflow.name} is valid ({len(workflow.steps)} steps)")


@workflow_app.command("run")
def workflow_run(
    workflow_path: Path,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object exposed as ${input.*}"),
    repo: Optional[str] = typer.Option(None, "--repo", help="JSON object exposed as ${repo.*}"),
    tools: Optional[List[str]] = typer.Option(None, "--tools", help=_TOOLS_OPTION_HELP),
    triggered_by: Optional[str] = typer.Option(None, "--triggered-by"),
    correlation_id: Optional[str] = typer.Option(None, "--correlation-id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """
    Execute a workflow document to completion.

    Tools are looked up in the process-wide registry, populated by importing
    the modules given with ``--tools``. The execution is recorded in the
    configured repository.

    Example:
        flowplane workflow run ./deploy.yaml --tools ./tools.py --input '{"pr": 42}'
        # Output: Execution 5f0c...: completed
        #         - fetch: completed (1 attempt)
    """
    config = load_config(str(config_path) if config_path else None)
    configure_logging(config.logging.level, config.logging.json_output)

    input_data = _parse_json_object(input, "--input")
    repo_data = _parse_json_object(repo, "--repo")
    _load_tools(tools)

    try:
        workflow = load_workflow(workflow_path)
    except FileNotFoundError:
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except SchemaValidationError as exc:
        _echo_validation_error(workflow_path, exc)
        raise typer.Exit(code=1)

    orchestrator = WorkflowOrchestrator(
        REGISTRY,
        repository=get_repository(config=config),
        config=config.engine,
    )

    async def _run() -> ExecutionResult:
        try:
            return await orchestrator.execute(
                workflow,
                input=input_data,
                repo=repo_data,
                workflow_id=str(workflow_path),
                triggered_by=triggered_by,
                correlation_id=correlation_id,
            )
        finally:
            await REGISTRY.close()

    result = asyncio.run(_run())

    succeeded = result.status is ExecutionStatus.COMPLETED
    typer.secho(
        f"Execution {result.execution_id}: {result.status.value}",
        fg=typer.colors.GREEN if succeeded else typer.colors.RED,
    )
    for step in result.steps:
        line = f"- {step.step_name}: {step.status.value}"
        if step.retry_count:
            line += f" ({step.retry_count + 1} attempts)"
        if step.error:
            line += f" [{step.error}]"
        typer.echo(line)
    if result.execution.error:
        typer.echo(f"Error: {result.execution.error}")
    typer.echo(f"Output: {json.dumps(result.output, default=str)}")
    for warning in result.warnings:
        typer.secho(f"Warning: {warning}", fg=typer.colors.YELLOW)

    if not succeeded:
        raise typer.Exit(code=1)


@workflow_app.command("discover")
def workflow_discover(
    path: Optional[Path] = None,
    respect_gitignore: bool = typer.Option(
        True, help="Skip files and directories specified in .gitignore files"
    ),
) -> None:
    """
    Find workflow documents in a directory.

    YAML and JSON files carrying a ``steps`` list are validated and listed;
    other documents are ignored.

    Example:
        flowplane workflow discover ./workflows
        # Output: ./deploy.yaml - deploy (3 steps): Build and release
    """
    search_path = (path or Path.cwd()).expanduser().resolve()
    typer.echo(f"Discovering workflows in: {search_path}")

    if not search_path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    found = 0
    for candidate in _iter_workflow_files(search_path, respect_gitignore=respect_gitignore):
        try:
            document = yaml.safe_load(candidate.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError):
            continue
        if not isinstance(document, dict) or "steps" not in document:
            continue

        display_path = _format_display_path(candidate, search_path)
        try:
            workflow = parse_workflow(document)
        except SchemaValidationError as exc:
            typer.secho(f"Skipping {display_path}: {exc}", fg=typer.colors.RED)
            continue

        found += 1
        summary = f"{display_path} - {workflow.name} ({len(workflow.steps)} steps)"
        if workflow.description:
            summary += f": {workflow.description}"
        typer.echo(summary)

    if not found:
        typer.echo("No workflows discovered.")


@execution_app.command("list")
def execution_list(
    limit: int = typer.Option(50, "--limit", min=1, help="Maximum executions to show"),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """
    List recent executions, newest first.

    Example:
        flowplane execution list --limit 5
        # Output: 5f0c...    completed    deploy    2024-01-01T10:00:00+00:00
    """
    repository = _repository(config_path)
    executions = asyncio.run(repository.list_executions(limit))
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(
            f"{execution.id}\t{execution.status.value}\t"
            f"{execution.workflow_name or '-'}\t{execution.started_at.isoformat()}"
        )


@execution_app.command("show")
def execution_show(
    execution_id: str,
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """
    Show one execution and its step history.

    Example:
        flowplane execution show 5f0c...
        # Output: Execution 5f0c... (deploy): failed
        #         - build: completed (2024-01-01 10:00 -> 10:01)
        #         - release: failed [StepExecutionError: ...]
    """
    repository = _repository(config_path)
    execution = asyncio.run(repository.get_execution(execution_id))
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    steps = asyncio.run(repository.get_execution_steps(execution_id))

    typer.echo(
        f"Execution {execution.id} ({execution.workflow_name or '-'}): "
        f"{execution.status.value}"
    )
    if execution.triggered_by:
        typer.echo(f"Triggered by: {execution.triggered_by}")
    if execution.correlation_id:
        typer.echo(f"Correlation ID: {execution.correlation_id}")
    if execution.input:
        typer.echo(f"Input: {json.dumps(execution.input, default=str)}")
    if execution.error:
        typer.echo(f"Error: {execution.error}")
    for step in steps:
        line = f"- {step.step_name}: {step.status.value}"
        if step.started_at or step.completed_at:
            line += f" ({step.started_at} -> {step.completed_at})"
        if step.error:
            line += f" [{step.error}]"
        typer.echo(line)


@tools_app.command("list")
def tools_list(
    tools: Optional[List[str]] = typer.Option(None, "--tools", help=_TOOLS_OPTION_HELP),
) -> None:
    """List tools available to ``workflow run``."""
    _load_tools(tools)
    descriptors = REGISTRY.describe()
    if not descriptors:
        typer.echo("No tools registered.")
        return
    for descriptor in descriptors:
        typer.echo(f"{descriptor.reference} - {descriptor.description or 'No description'}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
