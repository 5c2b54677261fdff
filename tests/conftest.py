"""
Shared fixtures for Shelf Planner tests.

``FakeStorage`` is an in-memory slot store that records every call so tests
can assert exactly which remote operations were issued.
"""

from typing import Dict, List, Optional, Set, Tuple

import pytest

from shelf_planner.models.shelf_models import Fixture, Product
from shelf_planner.services.storage_client import OccupancyResult, StorageResult
from shelf_planner.engine.remote_cache import RefreshConfig, RemoteStateCache
from shelf_planner.engine.reconciliation import ReconciliationEngine


MILK = Product(id="p-milk", name="Milk", category="Dairy", code="MLK-1")
BREAD = Product(id="p-bread", name="Bread", category="Bakery", code="BRD-1")
EGGS = Product(id="p-eggs", name="Eggs", category="Dairy", code="EGG-12")


class FakeStorage:
    """In-memory StorageBackend with a call log."""

    def __init__(self, products: Optional[List[Product]] = None):
        self.products: Dict[str, Product] = {p.id: p for p in (products or [MILK, BREAD, EGGS])}
        self.occupancy: Dict[str, Optional[Product]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_slots: Set[str] = set()
        self.read_failures = 0

    def seed(self, fixture: Fixture, placed: Optional[Dict[Tuple[int, int], Product]] = None):
        """Create every slot of a fixture, optionally pre-filled."""
        placed = placed or {}
        for row in range(1, fixture.rows + 1):
            for column in range(1, fixture.columns + 1):
                self.occupancy[f"{fixture.id}:{row}:{column}"] = placed.get((row, column))

    @property
    def write_calls(self) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("assign", "unassign")]

    async def assign(self, product_id: str, slot_id: str) -> StorageResult:
        self.calls.append(("assign", slot_id))
        if slot_id in self.fail_slots:
            return StorageResult(success=False, slot_id=slot_id, error="HTTP 500: boom")
        self.occupancy[slot_id] = self.products.get(product_id, Product(id=product_id, name=product_id))
        return StorageResult(success=True, slot_id=slot_id)

    async def unassign(self, slot_id: str) -> StorageResult:
        self.calls.append(("unassign", slot_id))
        if slot_id in self.fail_slots:
            return StorageResult(success=False, slot_id=slot_id, error="HTTP 500: boom")
        self.occupancy[slot_id] = None
        return StorageResult(success=True, slot_id=slot_id)

    async def read_fixture_occupancy(self, fixture_id: str) -> OccupancyResult:
        self.calls.append(("read", fixture_id))
        if self.read_failures > 0:
            self.read_failures -= 1
            return OccupancyResult(success=False, fixture_id=fixture_id, error="Request timed out")
        prefix = f"{fixture_id}:"
        slots = {k: v for k, v in self.occupancy.items() if k.startswith(prefix)}
        return OccupancyResult(success=True, fixture_id=fixture_id, slots=slots)


@pytest.fixture
def shelf() -> Fixture:
    """3 rows x 4 columns."""
    return Fixture(id="F", rows=3, columns=4, name="Dairy aisle")


@pytest.fixture
def storage(shelf) -> FakeStorage:
    fake = FakeStorage()
    fake.seed(shelf, {(1, 1): MILK})
    return fake


@pytest.fixture
def cache(storage) -> RemoteStateCache:
    return RemoteStateCache(storage, config=RefreshConfig(attempts=2, backoff_seconds=0))


@pytest.fixture
def engine(shelf, cache) -> ReconciliationEngine:
    return ReconciliationEngine(shelf, cache)


@pytest.fixture
async def loaded_engine(engine) -> ReconciliationEngine:
    """Engine whose snapshot has been fetched once."""
    await engine.refresh()
    return engine
