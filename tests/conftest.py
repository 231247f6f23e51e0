"""Shared fixtures: a seeded in-memory store, resolver and enricher."""

from __future__ import annotations

import pytest

from config.policy import DEFAULT_POLICY
from nagarseva.services.department_mapping import DepartmentMappingResolver
from nagarseva.services.enrichment import ComplaintEnricher
from nagarseva.store.memory import InMemoryDocumentStore

from tests.factories import seed_mappings


@pytest.fixture
async def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    await seed_mappings(store)
    return store


@pytest.fixture
def resolver(store: InMemoryDocumentStore) -> DepartmentMappingResolver:
    return DepartmentMappingResolver(store, policy=DEFAULT_POLICY, timeout_seconds=1.0, attempts=1)


@pytest.fixture
def enricher(resolver: DepartmentMappingResolver) -> ComplaintEnricher:
    return ComplaintEnricher(resolver)
