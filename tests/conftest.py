"""Root conftest for all tests.

Provides a session factory wired to an in-memory httpx transport.
"""

from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio
from loguru import logger

from app.coach.turn import CoachSession

BASE_URL = "http://coach.test"


@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep loguru output out of test reports unless a test adds a sink."""
    logger.remove()
    yield


@pytest_asyncio.fixture
async def make_session():
    """Factory: session whose HTTP calls are answered by `handler`."""
    clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable, **kwargs) -> CoachSession:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        kwargs.setdefault("timezone_offset", lambda: 0)
        return CoachSession(client, base_url=BASE_URL, **kwargs)

    yield factory

    for client in clients:
        await client.aclose()
