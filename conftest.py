"""
Pytest fixtures shared by the test modules.

Inventories are described as {item name: [store ids]} and built straight into
an InventorySnapshot, so solver tests need no database.
"""

from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import DatabaseManager
from inventory import InventoryIndex, InventorySnapshot
from shopping_graph import GeoLocation, Item, StockEntry, Store


def make_snapshot(
    stock: Dict[str, List[str]],
    locations: Optional[Dict[str, Tuple[float, float]]] = None,
    extra_stores: Tuple[str, ...] = (),
) -> InventorySnapshot:
    """Snapshot where every listed item-store pair is in stock."""
    locations = dict(locations or {})
    store_ids = set(extra_stores) | set(locations)
    for stores in stock.values():
        store_ids.update(stores)

    items = [Item(id=f"item-{name}", name=name) for name in stock]
    stores = [
        Store(id=store_id, name=store_id.title(), location=GeoLocation(*locations.get(store_id, (0.0, 0.0))))
        for store_id in sorted(store_ids)
    ]
    entries = [
        StockEntry(item_key=item.key, store_id=store_id, quantity=1)
        for item in items
        for store_id in stock[item.name]
    ]
    return InventorySnapshot.build(items, stores, entries)


@pytest.fixture
def index() -> InventoryIndex:
    snapshot = make_snapshot(
        {"itema": ["store1", "store2"], "itemb": ["store2"]},
        locations={"store1": (49.28, -123.11), "store2": (49.26, -123.16)},
    )
    return InventoryIndex(snapshot)


@pytest.fixture
def db_manager():
    manager = DatabaseManager("sqlite:///:memory:")
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def make_client():
    """Factory for a TestClient over an in-memory, demo-seeded app."""
    from app import create_app

    clients = []

    def _make(maps_client=None, **overrides):
        settings = Settings(database_url="sqlite:///:memory:", seed_demo_data=True, **overrides)
        manager = DatabaseManager(settings.database_url)
        app = create_app(settings=settings, db_manager=manager, maps_client=maps_client)
        client = TestClient(app)
        client.__enter__()
        clients.append((client, manager))
        return client

    yield _make

    for client, manager in clients:
        client.__exit__(None, None, None)
        manager.close()


@pytest.fixture
def client(make_client):
    return make_client()
