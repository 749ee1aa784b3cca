"""
Shared pytest fixtures for drainpool tests.

Workload helpers that are not fixtures live in ``tests._support.workloads``.
"""

from __future__ import annotations

import pytest

from drainpool.storage.memory import MemoryStore


@pytest.fixture
def items() -> list[int]:
    return list(range(10))


@pytest.fixture
def store(items: list[int]) -> MemoryStore:
    """Store holding one ``{"id": item}`` record per item."""
    return MemoryStore.for_items(items)


@pytest.fixture
def three_items_store() -> MemoryStore:
    return MemoryStore.for_items([0, 1, 2])
