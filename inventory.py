"""
Inventory Index - which stores carry an item, and where each store is

The index is a sequence of immutable InventorySnapshot values. Readers (the
cover solver, the route orderer, the read endpoints) take the current snapshot
once per request and never lock. Writers serialize on the index lock, build a
new snapshot from the old one and publish it with a single reference swap, so
an update to one item-store pair is atomic and in-flight solves keep reading
the snapshot they started with.

load_index() builds an index from the database tables with pandas.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from sqlalchemy import select
from sqlalchemy.engine import Engine

import models
from exceptions import DuplicateItem, UnknownItem, UnknownStore
from shopping_graph import GeoLocation, Item, StockEntry, Store, normalize_name

logger = logging.getLogger(__name__)

StockKey = Tuple[str, str]  # (item key, store id)


@dataclass(frozen=True)
class InventorySnapshot:
    """
    Consistent, read-only view of the inventory.

    Attributes:
        items: item key -> Item
        stores: store id -> Store
        stock: (item key, store id) -> StockEntry
        stocking: item key -> ids of stores with a stock entry for it
        store_items: store id -> item keys with a stock entry at that store
        version: incremented on every published update
    """
    items: Mapping[str, Item] = field(default_factory=dict)
    stores: Mapping[str, Store] = field(default_factory=dict)
    stock: Mapping[StockKey, StockEntry] = field(default_factory=dict)
    stocking: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    store_items: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    version: int = 0

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def stores_for(self, item: str) -> FrozenSet[str]:
        """
        Stores that stock the item, whatever the listed quantity.

        Raises:
            UnknownItem: If the item was never registered
        """
        key = normalize_name(item)
        if key not in self.items:
            raise UnknownItem([item])
        return self.stocking.get(key, frozenset())

    def location_of(self, store_id: str) -> GeoLocation:
        """
        Raises:
            UnknownStore: If the store is not registered
        """
        return self.store(store_id).location

    def store(self, store_id: str) -> Store:
        try:
            return self.stores[store_id]
        except KeyError:
            raise UnknownStore([store_id]) from None

    def item(self, name: str) -> Item:
        key = normalize_name(name)
        try:
            return self.items[key]
        except KeyError:
            raise UnknownItem([name]) from None

    def item_by_id(self, item_id: str) -> Item:
        for item in self.items.values():
            if item.id == item_id:
                return item
        raise UnknownItem([item_id])

    def has_item(self, name: str) -> bool:
        return normalize_name(name) in self.items

    def stock_entry(self, item: str, store_id: str) -> Optional[StockEntry]:
        return self.stock.get((normalize_name(item), store_id))

    def stock_at(self, store_id: str) -> List[StockEntry]:
        """All stock entries of a store, ordered by item key."""
        self.store(store_id)
        return [
            self.stock[(key, store_id)]
            for key in sorted(self.store_items.get(store_id, ()))
        ]

    def stores_within(self, location: GeoLocation, radius_km: float) -> FrozenSet[str]:
        """Ids of stores whose straight-line distance to location is <= radius_km."""
        return frozenset(
            store_id
            for store_id, store in self.stores.items()
            if location.distance_to(store.location) <= radius_km
        )

    # ------------------------------------------------------------------
    # Copy-on-write updates (each returns a new snapshot)
    # ------------------------------------------------------------------

    def with_item(self, item: Item) -> "InventorySnapshot":
        existing = self.items.get(item.key)
        if existing is not None and existing.id != item.id:
            raise DuplicateItem(item.name)
        items = dict(self.items)
        items[item.key] = item
        return replace(self, items=items, version=self.version + 1)

    def with_store(self, store: Store) -> "InventorySnapshot":
        stores = dict(self.stores)
        stores[store.id] = store
        return replace(self, stores=stores, version=self.version + 1)

    def with_stock(self, entry: StockEntry) -> "InventorySnapshot":
        if entry.item_key not in self.items:
            raise UnknownItem([entry.item_key])
        if entry.store_id not in self.stores:
            raise UnknownStore([entry.store_id])

        stock = dict(self.stock)
        stock[(entry.item_key, entry.store_id)] = entry

        stocking = dict(self.stocking)
        stocking[entry.item_key] = self.stocking.get(entry.item_key, frozenset()) | {entry.store_id}

        store_items = dict(self.store_items)
        store_items[entry.store_id] = self.store_items.get(entry.store_id, frozenset()) | {entry.item_key}

        return replace(
            self,
            stock=stock,
            stocking=stocking,
            store_items=store_items,
            version=self.version + 1,
        )

    def without_stock(self, item_key: str, store_id: str) -> "InventorySnapshot":
        if (item_key, store_id) not in self.stock:
            return self

        stock = dict(self.stock)
        del stock[(item_key, store_id)]

        stocking = dict(self.stocking)
        stocking[item_key] = self.stocking.get(item_key, frozenset()) - {store_id}

        store_items = dict(self.store_items)
        store_items[store_id] = self.store_items.get(store_id, frozenset()) - {item_key}

        return replace(
            self,
            stock=stock,
            stocking=stocking,
            store_items=store_items,
            version=self.version + 1,
        )

    def without_store(self, store_id: str) -> "InventorySnapshot":
        self.store(store_id)
        dropped = self.store_items.get(store_id, frozenset())

        stores = dict(self.stores)
        del stores[store_id]

        stock = {key: entry for key, entry in self.stock.items() if key[1] != store_id}

        stocking = dict(self.stocking)
        for item_key in dropped:
            stocking[item_key] = self.stocking.get(item_key, frozenset()) - {store_id}

        store_items = dict(self.store_items)
        store_items.pop(store_id, None)

        return replace(
            self,
            stores=stores,
            stock=stock,
            stocking=stocking,
            store_items=store_items,
            version=self.version + 1,
        )

    @classmethod
    def build(
        cls,
        items: Iterable[Item],
        stores: Iterable[Store],
        stock: Iterable[StockEntry],
    ) -> "InventorySnapshot":
        """Build a snapshot in one pass (used at load time)."""
        item_map: Dict[str, Item] = {}
        for item in items:
            if item.key in item_map:
                raise DuplicateItem(item.name)
            item_map[item.key] = item

        store_map = {store.id: store for store in stores}

        stock_map: Dict[StockKey, StockEntry] = {}
        stocking: Dict[str, set] = {}
        store_items: Dict[str, set] = {}
        for entry in stock:
            if entry.item_key not in item_map:
                raise UnknownItem([entry.item_key])
            if entry.store_id not in store_map:
                raise UnknownStore([entry.store_id])
            stock_map[(entry.item_key, entry.store_id)] = entry
            store_items.setdefault(entry.store_id, set()).add(entry.item_key)
            stocking.setdefault(entry.item_key, set()).add(entry.store_id)

        return cls(
            items=item_map,
            stores=store_map,
            stock=stock_map,
            stocking={key: frozenset(ids) for key, ids in stocking.items()},
            store_items={key: frozenset(keys) for key, keys in store_items.items()},
        )


class InventoryIndex:
    """Process-wide owner of the current InventorySnapshot."""

    def __init__(self, snapshot: Optional[InventorySnapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot if snapshot is not None else InventorySnapshot()

    def snapshot(self) -> InventorySnapshot:
        """Current snapshot. Hold on to it for the duration of a request."""
        return self._snapshot

    def stores_for(self, item: str) -> FrozenSet[str]:
        return self._snapshot.stores_for(item)

    def location_of(self, store_id: str) -> GeoLocation:
        return self._snapshot.location_of(store_id)

    def _apply(self, update: Callable[[InventorySnapshot], InventorySnapshot]) -> InventorySnapshot:
        with self._lock:
            snapshot = update(self._snapshot)
            self._snapshot = snapshot
        return snapshot

    def register_item(self, item: Item) -> None:
        self._apply(lambda snap: snap.with_item(item))

    def register_store(self, store: Store) -> None:
        self._apply(lambda snap: snap.with_store(store))

    def set_stock(
        self,
        item: str,
        store_id: str,
        quantity: Optional[int] = None,
        price: Optional[float] = None,
    ) -> StockEntry:
        """
        Add or replace the stock entry of one item-store pair.

        The store stocks the item from here on, even with a quantity of 0.
        Use remove_stock to take the item off the store.
        """
        entry = StockEntry(
            item_key=normalize_name(item),
            store_id=store_id,
            quantity=quantity,
            price=price,
        )
        self._apply(lambda snap: snap.with_stock(entry))
        return entry

    def remove_stock(self, item: str, store_id: str) -> None:
        key = normalize_name(item)
        self._apply(lambda snap: snap.without_stock(key, store_id))

    def remove_store(self, store_id: str) -> Store:
        """
        Drop a store and all of its stock entries.

        Raises:
            UnknownStore: If the store is not registered
        """
        removed = self._snapshot.store(store_id)
        self._apply(lambda snap: snap.without_store(store_id))
        return removed


# ============================================================================
# Loading from the database
# ============================================================================

def _clean(value):
    """pandas reads SQL NULLs as None or NaN depending on column dtype."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def snapshot_from_frames(
    items_df: pd.DataFrame,
    stores_df: pd.DataFrame,
    stock_df: pd.DataFrame,
) -> InventorySnapshot:
    """
    Build a snapshot from three DataFrames.

    Args:
        items_df: columns id, name, description, barcode, units
        stores_df: columns id, name, address, city, province, latitude, longitude, place_id
        stock_df: columns item_key, store_id, quantity, price

    Returns:
        InventorySnapshot
    """
    items = [
        Item(
            id=str(row.id),
            name=row.name,
            description=_clean(row.description),
            barcode=_clean(row.barcode),
            units=_clean(row.units),
        )
        for row in items_df.itertuples(index=False)
    ]
    stores = [
        Store(
            id=str(row.id),
            name=row.name,
            location=GeoLocation(float(row.latitude), float(row.longitude)),
            address=_clean(row.address),
            city=_clean(row.city),
            province=_clean(row.province),
            place_id=_clean(row.place_id),
        )
        for row in stores_df.itertuples(index=False)
    ]
    stock = []
    for row in stock_df.itertuples(index=False):
        quantity = _clean(row.quantity)
        price = _clean(row.price)
        stock.append(
            StockEntry(
                item_key=row.item_key,
                store_id=str(row.store_id),
                quantity=None if quantity is None else int(quantity),
                price=None if price is None else float(price),
            )
        )
    return InventorySnapshot.build(items, stores, stock)


def load_index(engine: Engine) -> InventoryIndex:
    """Read items, stores and stock from the database into a new InventoryIndex."""
    with engine.connect() as conn:
        items_df = pd.read_sql(
            select(
                models.Item.id,
                models.Item.name,
                models.Item.description,
                models.Item.barcode,
                models.Item.units,
            ),
            conn,
        )
        stores_df = pd.read_sql(
            select(
                models.Store.id,
                models.Store.name,
                models.Store.address,
                models.Store.city,
                models.Store.province,
                models.Store.latitude,
                models.Store.longitude,
                models.Store.place_id,
            ),
            conn,
        )
        stock_df = pd.read_sql(
            select(
                models.Item.key.label("item_key"),
                models.StoreItem.store_id,
                models.StoreItem.quantity,
                models.StoreItem.price,
            )
            .select_from(models.StoreItem)
            .join(models.Item, models.StoreItem.item_id == models.Item.id),
            conn,
        )

    snapshot = snapshot_from_frames(items_df, stores_df, stock_df)
    logger.info(
        f"✓ Inventory loaded: {len(snapshot.items)} items, "
        f"{len(snapshot.stores)} stores, {len(snapshot.stock)} stock entries"
    )
    return InventoryIndex(snapshot)
