"""
Inventory service - writes to items, stores and stock

Every write goes to the database first and is then published to the
InventoryIndex. Writes are serialized on one lock so the database and the
index apply updates in the same order.
"""

import logging
import threading
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

import models
from database import DatabaseManager
from exceptions import BaseAppException, DuplicateItem, GeocodingUnavailable, UnknownItem
from googlemaps_client import GoogleMapsClient
from inventory import InventoryIndex
from shopping_graph import GeoLocation, Item, StockEntry, Store, normalize_name

logger = logging.getLogger(__name__)


class InventoryService:
    """Persists catalog and stock changes and keeps the index in step"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        index: InventoryIndex,
        maps_client: Optional[GoogleMapsClient] = None,
    ):
        self.db_manager = db_manager
        self.index = index
        self.maps_client = maps_client
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def add_item(
        self,
        name: str,
        description: Optional[str] = None,
        barcode: Optional[str] = None,
        units: Optional[str] = None,
    ) -> Item:
        """
        Register a catalog item.

        Raises:
            DuplicateItem: If an item with the same normalized name exists
        """
        key = normalize_name(name)
        if not key:
            raise BaseAppException("Item name must not be blank")

        with self._write_lock:
            if self.index.snapshot().has_item(key):
                raise DuplicateItem(name)

            try:
                with self.db_manager.session_scope() as session:
                    row = models.Item(
                        key=key,
                        name=name.strip(),
                        description=description,
                        barcode=barcode,
                        units=units,
                    )
                    session.add(row)
                    session.flush()
                    item = Item(
                        id=row.id,
                        name=row.name,
                        description=description,
                        barcode=barcode,
                        units=units,
                    )
            except IntegrityError:
                raise DuplicateItem(name) from None

            self.index.register_item(item)

        logger.info(f"✓ Added item '{item.name}' ({item.id})")
        return item

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def register_store(
        self,
        name: str,
        address: Optional[str] = None,
        city: Optional[str] = None,
        province: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Store:
        """
        Register a store, geocoding its address when coordinates are omitted.

        Raises:
            GeocodingUnavailable: No coordinates given and the address could not be geocoded
            InvalidCoordinates: Coordinates out of range
        """
        place_id = None
        if latitude is None or longitude is None:
            if self.maps_client is None:
                raise GeocodingUnavailable()
            address_string = " ".join(part for part in (address, city, province) if part)
            try:
                geocoded = self.maps_client.geocode_address(address_string)
            except ValueError as e:
                raise GeocodingUnavailable(str(e)) from e
            location = geocoded.location
            place_id = geocoded.place_id
        else:
            location = GeoLocation(latitude, longitude)
        location.validate()

        with self._write_lock:
            with self.db_manager.session_scope() as session:
                row = models.Store(
                    name=name,
                    address=address,
                    city=city,
                    province=province,
                    latitude=location.latitude,
                    longitude=location.longitude,
                    place_id=place_id,
                )
                session.add(row)
                session.flush()
                store = Store(
                    id=row.id,
                    name=name,
                    location=location,
                    address=address,
                    city=city,
                    province=province,
                    place_id=place_id,
                )

            self.index.register_store(store)

        logger.info(f"✓ Registered store '{store.name}' ({store.id})")
        return store

    def delete_store(self, store_id: str) -> Store:
        """
        Delete a store together with its stock entries.

        Raises:
            UnknownStore: If the store is not registered
        """
        with self._write_lock:
            store = self.index.snapshot().store(store_id)

            with self.db_manager.session_scope() as session:
                row = session.get(models.Store, store_id)
                if row is not None:
                    session.delete(row)

            self.index.remove_store(store_id)

        logger.info(f"✓ Deleted store '{store.name}' ({store.id})")
        return store

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def set_stock(
        self,
        store_id: str,
        item_id: str,
        quantity: Optional[int] = None,
        price: Optional[float] = None,
    ) -> StockEntry:
        """
        Add or update the stock of one item at one store.

        Raises:
            UnknownStore, UnknownItem
        """
        with self._write_lock:
            snapshot = self.index.snapshot()
            snapshot.store(store_id)
            item = snapshot.item_by_id(item_id)

            with self.db_manager.session_scope() as session:
                row = session.execute(
                    select(models.StoreItem).where(
                        models.StoreItem.store_id == store_id,
                        models.StoreItem.item_id == item_id,
                    )
                ).scalar_one_or_none()
                if row is None:
                    row = models.StoreItem(store_id=store_id, item_id=item_id)
                    session.add(row)
                row.quantity = quantity
                row.price = price

            entry = self.index.set_stock(item.key, store_id, quantity=quantity, price=price)

        logger.info(f"✓ Stock {item.name} @ {store_id}: qty={quantity} price={price}")
        return entry

    def remove_stock(self, store_id: str, item_ids: Iterable[str]) -> int:
        """
        Remove stock entries of the given items from a store.

        Returns:
            Number of entries removed
        """
        item_ids = list(item_ids)
        with self._write_lock:
            snapshot = self.index.snapshot()
            snapshot.store(store_id)
            known_ids = {item.id for item in snapshot.items.values()}
            unknown = [item_id for item_id in item_ids if item_id not in known_ids]
            if unknown:
                raise UnknownItem(unknown)
            items = [snapshot.item_by_id(item_id) for item_id in item_ids]

            with self.db_manager.session_scope() as session:
                rows = session.execute(
                    select(models.StoreItem).where(
                        models.StoreItem.store_id == store_id,
                        models.StoreItem.item_id.in_(item_ids),
                    )
                ).scalars().all()
                for row in rows:
                    session.delete(row)
                removed = len(rows)

            for item in items:
                self.index.remove_stock(item.key, store_id)

        logger.info(f"✓ Removed {removed} stock entr{'y' if removed == 1 else 'ies'} from {store_id}")
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_stores(self) -> List[Store]:
        return sorted(self.index.snapshot().stores.values(), key=lambda s: (s.name, s.id))

    def get_store(self, store_id: str) -> Store:
        return self.index.snapshot().store(store_id)

    def stock_at(self, store_id: str) -> List[Tuple[Item, StockEntry]]:
        snapshot = self.index.snapshot()
        return [(snapshot.items[entry.item_key], entry) for entry in snapshot.stock_at(store_id)]
