"""
Demo inventory for local development (Vancouver, BC)

MockDataManager.seed_default_data(session) fills an empty database with a
handful of stores, items and stock entries. It never touches a database that
already has stores.
"""

import logging
from typing import Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import Item, Store, StoreItem
from shopping_graph import normalize_name

logger = logging.getLogger(__name__)

DEFAULT_STORES = [
    {
        "name": "Gastown's",
        "address": "321 Water Street",
        "city": "Vancouver",
        "province": "BC",
        "latitude": 49.2846566,
        "longitude": -123.1093607,
    },
    {
        "name": "Kitsilano Market",
        "address": "2210 West 4th Avenue",
        "city": "Vancouver",
        "province": "BC",
        "latitude": 49.2682,
        "longitude": -123.1586,
    },
    {
        "name": "UBC Village Grocer",
        "address": "5796 Berton Avenue",
        "city": "Vancouver",
        "province": "BC",
        "latitude": 49.2663,
        "longitude": -123.2440,
    },
    {
        "name": "Main Street Foods",
        "address": "3185 Main Street",
        "city": "Vancouver",
        "province": "BC",
        "latitude": 49.2573,
        "longitude": -123.1010,
    },
]

DEFAULT_ITEMS = [
    {"name": "cookies", "description": "Delicious oven-baked goodness", "barcode": "12345678", "units": "800 g"},
    {"name": "apple", "description": "Crispy fruit", "barcode": "3065", "units": "0.5 kg"},
    {"name": "Banana", "description": "Most popular fruit in the world", "barcode": "4011", "units": "0.3 kg"},
    {"name": "Butter", "description": "Dairy item", "barcode": "26322373235236", "units": "1 L"},
    {"name": "milk", "description": "2% partly skimmed", "barcode": "06870030", "units": "2 L"},
    {"name": "bread", "description": "Whole wheat loaf", "barcode": "06038318", "units": "675 g"},
    {"name": "eggs", "description": "Large, free run", "barcode": "06210012", "units": "12 ea"},
]

# store name -> {item name: (quantity, price)}
DEFAULT_STOCK: Dict[str, Dict[str, tuple]] = {
    "Gastown's": {
        "cookies": (10, 2.50),
        "apple": (10, 2.99),
        "Banana": (75, 0.61),
        "Butter": (30, 4.25),
    },
    "Kitsilano Market": {
        "apple": (40, 2.49),
        "milk": (20, 5.49),
        "bread": (0, 3.99),
    },
    "UBC Village Grocer": {
        "milk": (12, 5.79),
        "eggs": (24, 4.99),
        "Banana": (50, 0.59),
    },
    "Main Street Foods": {
        "bread": (8, 3.79),
        "eggs": (6, 5.29),
        "cookies": (15, 2.75),
    },
}


class MockDataManager:
    """Seeds the demo inventory"""

    @staticmethod
    def seed_default_data(session: Session) -> int:
        """
        Insert the demo stores, items and stock if the database has no stores.

        Returns:
            Number of stores inserted (0 if the database was not empty)
        """
        existing = session.execute(select(func.count()).select_from(Store)).scalar_one()
        if existing:
            logger.info(f"Database already has {existing} store(s), skipping demo seed")
            return 0

        stores = {data["name"]: Store(**data) for data in DEFAULT_STORES}
        items = {
            data["name"]: Item(key=normalize_name(data["name"]), **data)
            for data in DEFAULT_ITEMS
        }
        session.add_all(list(stores.values()) + list(items.values()))
        session.flush()

        for store_name, stock in DEFAULT_STOCK.items():
            for item_name, (quantity, price) in stock.items():
                session.add(
                    StoreItem(
                        store_id=stores[store_name].id,
                        item_id=items[item_name].id,
                        quantity=quantity,
                        price=price,
                    )
                )
        session.commit()

        logger.info(f"✓ Seeded {len(stores)} stores and {len(items)} items")
        return len(stores)
