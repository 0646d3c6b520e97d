"""
SQLAlchemy ORM Models for the InStock trip optimizer

Tables:
- stores: Physical store locations
- items: Catalog items, unique by normalized name
- store_items: Inventory relation (which store stocks which item, quantity, price)

The database is the system of record. The in-memory InventoryIndex is rebuilt
from these tables at startup and kept in step by the write endpoints.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, DateTime, Float, ForeignKey, Index, Integer, Numeric,
    String, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def new_id() -> str:
    """24-char hex identifier, same width as the ids the mobile client already stores."""
    return uuid.uuid4().hex[:24]


class Store(Base):
    """Physical store with location"""
    __tablename__ = 'stores'

    id = Column(String(24), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    address = Column(String(500))
    city = Column(String(100))
    province = Column(String(50))
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    place_id = Column(String(255))  # Google Maps place id, when geocoded
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    stock = relationship("StoreItem", back_populates="store", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Store {self.name}>"


class Item(Base):
    """Catalog item; `key` is the normalized name used for lookups"""
    __tablename__ = 'items'

    id = Column(String(24), primary_key=True, default=new_id)
    key = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(String(1000))
    barcode = Column(String(64))
    units = Column(String(50))
    created_at = Column(DateTime, default=datetime.utcnow)

    stock = relationship("StoreItem", back_populates="item", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Item {self.name}>"


class StoreItem(Base):
    """Current stock of one item at one store"""
    __tablename__ = 'store_items'
    __table_args__ = (
        UniqueConstraint('item_id', 'store_id', name='unique_item_store'),
        Index('idx_store_items_item_id', 'item_id'),
        Index('idx_store_items_store_id', 'store_id'),
    )

    id = Column(Integer, primary_key=True)
    item_id = Column(String(24), ForeignKey('items.id'), nullable=False)
    store_id = Column(String(24), ForeignKey('stores.id'), nullable=False)
    quantity = Column(Integer, nullable=True)  # None = carried, count unknown
    price = Column(Numeric(10, 2), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    item = relationship("Item", back_populates="stock")
    store = relationship("Store", back_populates="stock")

    def __repr__(self):
        return f"<StoreItem {self.item_id} @ {self.store_id}: qty={self.quantity}>"
