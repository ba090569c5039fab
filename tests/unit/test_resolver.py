import pytest

from flowplane.context import MISSING, ExecutionContext
from flowplane.errors import UnresolvedVariableError
from flowplane.resolver import VariableResolver


@pytest.fixture
def context():
    ctx = ExecutionContext(input={"pr": 42, "title": "Fix", "draft": False}, repo={"name": "core"})
    ctx.set("data", {"items": [1, 2], "meta": None})
    return ctx


def test_whole_value_token_keeps_type(context):
    resolver = VariableResolver()
    assert resolver.resolve("${input.pr}", context) == 42
    assert resolver.resolve("${input.draft}", context) is False
    assert resolver.resolve("${variables.data}", context) == {"items": [1, 2], "meta": None}
    assert resolver.resolve("${variables.data.meta}", context) is None


def test_embedded_tokens_are_stringified(context):
    resolver = VariableResolver()
    assert resolver.resolve("PR #${input.pr}: ${input.title}", context) == "PR #42: Fix"
    assert resolver.resolve("items=${variables.data.items}", context) == "items=[1,2]"


def test_nested_structures_are_resolved(context):
    params = {
        "repo": "${repo.name}",
        "labels": ["x", "${input.title}"],
        "count": 3,
        "${input.pr}": "keys stay as written",
    }
    resolved = VariableResolver().resolve(params, context, "s")
    assert resolved == {
        "repo": "core",
        "labels": ["x", "Fix"],
        "count": 3,
        "${input.pr}": "keys stay as written",
    }


def test_resolution_does_not_mutate_inputs(context):
    params = {"data": "${variables.data}"}
    resolved = VariableResolver().resolve(params, context)
    resolved["data"]["items"].append(99)
    assert params == {"data": "${variables.data}"}
    assert context.get("variables.data.items") == [1, 2]


def test_strict_mode_raises_with_step_and_path(context):
    with pytest.raises(UnresolvedVariableError) as info:
        VariableResolver().resolve({"x": "a ${input.missing}"}, context, "notify")
    assert info.value.step == "notify"
    assert info.value.path == "input.missing"


def test_lenient_mode_returns_missing(context):
    resolver = VariableResolver(strict=False)
    assert resolver.resolve("${input.missing}", context) is MISSING
    assert resolver.resolve("x ${input.missing}", context) is MISSING


def test_plain_strings_and_scalars_pass_through(context):
    resolver = VariableResolver()
    assert resolver.resolve("plain", context) == "plain"
    assert resolver.resolve(1.5, context) == 1.5
    assert resolver.resolve(None, context) is None
