from typer.testing import CliRunner

from flowplane.cli import app
from flowplane.cli_utils.fs import _iter_workflow_files

runner = CliRunner()

WORKFLOW = """
name: {name}
description: {description}
steps:
  - name: one
    tool: svc.one
"""


def _make_tree(root):
    (root / "flows").mkdir()
    (root / "flows" / "deploy.yaml").write_text(WORKFLOW.format(name="deploy", description="Ship it"))
    (root / "flows" / "triage.json").write_text(
        '{"name": "triage", "steps": [{"name": "a", "tool": "gh.label"}]}'
    )
    (root / "flows" / "settings.yaml").write_text("engine:\n  default_timeout_ms: 10\n")
    (root / "flows" / "broken.yml").write_text("name: broken\nsteps: []\n")
    (root / "ignored").mkdir()
    (root / "ignored" / "old.yaml").write_text(WORKFLOW.format(name="old", description="Old"))
    (root / ".gitignore").write_text("ignored/\n")
    (root / "notes.txt").write_text("not a workflow")


def test_iter_workflow_files_respects_gitignore(tmp_path):
    _make_tree(tmp_path)
    names = [p.name for p in _iter_workflow_files(tmp_path)]
    assert names == ["broken.yml", "deploy.yaml", "settings.yaml", "triage.json"]

    all_names = [p.name for p in _iter_workflow_files(tmp_path, respect_gitignore=False)]
    assert "old.yaml" in all_names


def test_discover_lists_valid_workflows(tmp_path):
    _make_tree(tmp_path)
    result = runner.invoke(app, ["workflow", "discover", str(tmp_path)])

    assert result.exit_code == 0
    assert "./flows/deploy.yaml - deploy (1 steps): Ship it" in result.output
    assert "./flows/triage.json - triage (1 steps)" in result.output
    assert "Skipping ./flows/broken.yml" in result.output
    assert "settings.yaml" not in result.output
    assert "old.yaml" not in result.output


def test_discover_single_file(tmp_path):
    path = tmp_path / "deploy.yaml"
    path.write_text(WORKFLOW.format(name="deploy", description="Ship it"))
    result = runner.invoke(app, ["workflow", "discover", str(path)])
    assert result.exit_code == 0
    assert "deploy (1 steps)" in result.output


def test_discover_nothing_found(tmp_path):
    result = runner.invoke(app, ["workflow", "discover", str(tmp_path)])
    assert result.exit_code == 0
    assert "No workflows discovered." in result.output


def test_discover_missing_path(tmp_path):
    result = runner.invoke(app, ["workflow", "discover", str(tmp_path / "missing")])
    assert result.exit_code == 1
    assert "does not exist" in result.output
