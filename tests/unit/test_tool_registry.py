import threading

import pytest

from flowplane.errors import ToolNotFoundError
from flowplane.tools import ToolRegistry


@pytest.mark.asyncio
async def test_invoke_async_and_sync_tools(registry):
    @registry.tool("math.double")
    async def double(params):
        """Double a number."""
        return params["n"] * 2

    caller_thread = threading.get_ident()
    seen = {}

    def where(params):
        seen["thread"] = threading.get_ident()
        return "ok"

    registry.register("debug.where", where)

    assert await registry.invoke("math.double", {"n": 4}) == 8
    assert await registry.invoke("debug.where", {}) == "ok"
    assert seen["thread"] != caller_thread


@pytest.mark.asyncio
async def test_unknown_tool_is_not_retryable(registry):
    with pytest.raises(ToolNotFoundError) as info:
        await registry.invoke("nope.missing", {})
    assert info.value.retryable is False


def test_duplicate_and_invalid_registration(registry):
    registry.register("a.b", lambda p: p)
    with pytest.raises(ValueError):
        registry.register("a.b", lambda p: p)
    registry.register("a.b", lambda p: None, replace=True)
    with pytest.raises(ValueError):
        registry.register("not-a-reference", lambda p: p)


def test_describe_lists_sorted_descriptors(registry):
    async def second(params):
        """Second tool.

        More detail.
        """

    registry.register("z.last", second)
    registry.register("a.first", lambda p: p, description="First tool")

    descriptors = registry.describe()
    assert [d.reference for d in descriptors] == ["a.first", "z.last"]
    assert descriptors[0].description == "First tool"
    assert descriptors[0].is_async is False
    assert descriptors[1].description == "Second tool."
    assert descriptors[1].is_async is True
    assert "a.first" in registry

    registry.unregister("a.first")
    assert "a.first" not in registry


def test_global_register_tool_decorator():
    from flowplane.tools import REGISTRY, register_tool

    @register_tool("unit.global_sample", description="sample")
    def sample(params):
        return params

    try:
        assert "unit.global_sample" in REGISTRY
    finally:
        REGISTRY.unregister("unit.global_sample")
    assert isinstance(REGISTRY, ToolRegistry)
