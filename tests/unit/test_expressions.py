import pytest

from flowplane.errors import ExpressionSyntaxError
from flowplane.expressions import (
    Reference,
    Text,
    is_literal,
    iter_strings,
    parse_literal,
    parse_path,
    parse_template,
)


def test_parse_path_dotted_and_indexed():
    assert parse_path("input.issue.labels[0].name") == ("input", "issue", "labels", 0, "name")
    assert parse_path("variables.items.2") == ("variables", "items", 2)
    assert parse_path("  repo.owner ") == ("repo", "owner")


@pytest.mark.parametrize("expr", ["", "a..b", "a.", "a[x]", "a[1", "a b"])
def test_parse_path_rejects_malformed(expr):
    with pytest.raises(ExpressionSyntaxError):
        parse_path(expr)


def test_parse_template_splits_text_and_references():
    template = parse_template("PR #${input.pr} by ${input.author}")
    assert template.segments == (
        Text("PR #"),
        Reference(("input", "pr"), "input.pr"),
        Text(" by "),
        Reference(("input", "author"), "input.author"),
    )
    assert template.single_reference is None
    assert len(template.references) == 2


def test_whole_value_token_is_single_reference():
    template = parse_template("${variables.data}")
    assert template.single_reference == Reference(("variables", "data"), "variables.data")


def test_plain_and_unterminated_strings_stay_literal():
    assert parse_template("no tokens here").is_plain
    template = parse_template("cost ${input.amount")
    assert template.is_plain
    assert template.segments == (Text("cost ${input.amount"),)


def test_invalid_token_raises():
    with pytest.raises(ExpressionSyntaxError):
        parse_template("${input..x}")


def test_literals():
    assert parse_literal("true") is True
    assert parse_literal("false") is False
    assert parse_literal("null") is None
    assert parse_literal("0") == 0
    assert parse_literal("-2.5") == -2.5
    assert parse_literal("'ok'") == "ok"
    assert not is_literal("${input.x}")
    assert not is_literal("yes")


def test_iter_strings_reports_field_paths():
    value = {"a": "x", "b": [1, "y", {"c": "z"}]}
    assert list(iter_strings(value, "params")) == [
        ("params.a", "x"),
        ("params.b[1]", "y"),
        ("params.b[2].c", "z"),
    ]
