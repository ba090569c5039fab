import pytest

from flowplane.tools import ToolRegistry


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
