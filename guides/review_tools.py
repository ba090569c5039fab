"""Tools used by ``pr_review.yaml``.

Load them into the CLI with::

    flowplane workflow run guides/pr_review.yaml --tools guides/review_tools.py \
        --input '{"pr": 42, "postComment": true}' --repo '{"fullName": "acme/api"}'
"""

import asyncio

from flowplane import register_tool
from flowplane.errors import ToolError


@register_tool("github.getPullRequest")
async def get_pull_request(params):
    """Fetch pull request metadata."""
    if not isinstance(params.get("number"), int):
        raise ToolError("number must be an integer", retryable=False)
    await asyncio.sleep(0.1)
    return {
        "number": params["number"],
        "title": "Handle empty payloads",
        "head": "feature/empty-payloads",
        "files": ["api/handlers.py", "tests/test_handlers.py"],
    }


@register_tool("text.summarise")
def summarise(params):
    """Produce a one-line summary of a change."""
    return f"{params['title']} ({len(params['files'])} files changed)"


@register_tool("github.comment")
def comment(params):
    """Post a comment on a pull request."""
    print(f"[comment on #{params['number']}] {params['body']}")
    return {"posted": True}


@register_tool("ops.deploy")
async def deploy(params):
    """Deploy a git ref to staging."""
    await asyncio.sleep(0.1)
    return {"deployed": params["ref"]}
