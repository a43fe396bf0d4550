"""
Shared test fixtures for job-hierarchy tests.

This module provides:
- A controllable clock for timestamps and key expiry
- In-memory store, event bus and hierarchy fixtures
- A Redis client mock with buffered pipelines
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from job_hierarchy import (
    Hierarchy,
    HierarchySettings,
    InMemoryEventBus,
    InMemoryTreeStore,
)
from tests._tree_testkit import FakeClock, FakePipeline


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> HierarchySettings:
    return HierarchySettings(redis_url="redis://localhost:6379/15")


@pytest.fixture
def store(clock, settings) -> InMemoryTreeStore:
    return InMemoryTreeStore(
        key_prefix=settings.key_prefix,
        ttl_seconds=settings.ttl_seconds,
        clock=clock,
    )


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def hierarchy(store, bus, settings, clock) -> Hierarchy:
    return Hierarchy(store=store, event_bus=bus, settings=settings, clock=clock)


@pytest.fixture
def redis_client():
    """MagicMock shaped like redis.asyncio.Redis."""
    client = MagicMock()
    client.pipelines = []

    def pipeline(transaction=True):
        pipe = FakePipeline()
        client.pipelines.append(pipe)
        return pipe

    client.pipeline.side_effect = pipeline
    client.register_script.return_value = AsyncMock(return_value=1)
    client.hget = AsyncMock(return_value=None)
    client.hgetall = AsyncMock(return_value={})
    client.lrange = AsyncMock(return_value=[])
    client.exists = AsyncMock(return_value=0)
    client.delete = AsyncMock(return_value=0)
    client.publish = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    return client
