"""
Request/response models for the REST API.

Field names follow the JSON the mobile client already sends and parses
(camelCase request keys, `_id`/`lat`/`lng` on records).
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from shopping_graph import GeoLocation, Item, StockEntry, Store


class Location(BaseModel):
    latitude: float
    longitude: float

    def to_geo(self) -> GeoLocation:
        return GeoLocation(self.latitude, self.longitude)


# --------------------------- Records ---------------------------

class ItemRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str
    description: Optional[str] = None
    barcode: Optional[str] = None
    units: Optional[str] = None

    @classmethod
    def from_item(cls, item: Item) -> "ItemRecord":
        return cls(
            id=item.id,
            name=item.name,
            description=item.description,
            barcode=item.barcode,
            units=item.units,
        )


class StockedItemRecord(ItemRecord):
    quantity: Optional[int] = None
    price: Optional[float] = None

    @classmethod
    def from_stock(cls, item: Item, entry: StockEntry) -> "StockedItemRecord":
        return cls(
            id=item.id,
            name=item.name,
            description=item.description,
            barcode=item.barcode,
            units=item.units,
            quantity=entry.quantity,
            price=entry.price,
        )


class StoreRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    lat: float
    lng: float
    place_id: Optional[str] = None

    @classmethod
    def store_fields(cls, store: Store) -> dict:
        return {
            "id": store.id,
            "name": store.name,
            "address": store.address,
            "city": store.city,
            "province": store.province,
            "lat": store.location.latitude,
            "lng": store.location.longitude,
            "place_id": store.place_id,
        }

    @classmethod
    def from_store(cls, store: Store) -> "StoreRecord":
        return cls(**cls.store_fields(store))


class StoreWithItems(StoreRecord):
    items: List[StockedItemRecord] = []


class StoreStockRecord(StoreRecord):
    quantity: Optional[int] = None
    price: Optional[float] = None


# --------------------------- Requests ---------------------------

class FewestStoresRequest(BaseModel):
    shoppingList: List[str] = []
    location: Optional[Location] = None
    radius: Optional[float] = Field(None, gt=0)


class ShortestPathRequest(BaseModel):
    stores: List[str] = []
    location: Location


class ShoppingTripRequest(BaseModel):
    shoppingList: List[str] = []
    location: Location
    radius: Optional[float] = Field(None, gt=0)


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    barcode: Optional[str] = None
    units: Optional[str] = None


class StoreCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class StockCreate(BaseModel):
    itemId: str
    quantity: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)


class StockUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)


class StockRemove(BaseModel):
    itemIds: List[str] = Field(..., min_length=1)


class ItemLookup(BaseModel):
    itemIds: List[str] = []


# --------------------------- Responses ---------------------------

class FewestStoresResponse(BaseModel):
    stores: List[StoreWithItems]
    uncovered: List[str] = []
    unknownItems: List[str] = []
    partial: bool = False


class ItemStoreListResponse(BaseModel):
    stores: List[StoreStockRecord]


class ShoppingTripResponse(FewestStoresResponse):
    route: List[str] = []
    distanceKm: Optional[float] = None
