"""Redis fixtures for testing; skipped unless REDIS_URL_EVENTS is set."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from redis.asyncio import Redis


@pytest.fixture(scope="session")
def redis_url() -> str:
    url = os.environ.get("REDIS_URL_EVENTS")
    if not url:
        pytest.skip("REDIS_URL_EVENTS environment variable not set for tests.")
    return url


@pytest_asyncio.fixture(scope="function")
async def redis_client(redis_url: str) -> AsyncGenerator[Redis]:
    """Function-scoped client to avoid event loop issues."""
    client: Redis = Redis.from_url(redis_url, decode_responses=False)
    yield client
    await client.aclose()
