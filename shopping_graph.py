"""
Shopping Graph - core value types and distance metrics

This module defines:
1. Core graph objects (GeoLocation, Item, Store, StockEntry)
2. Name normalization shared by the inventory and the solvers
3. Distance metrics used by the route orderer (straight-line and planar)

All objects here are immutable. The inventory index swaps whole snapshots of
them rather than mutating them in place.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from exceptions import InvalidCoordinates

EARTH_RADIUS_KM = 6371.0


def normalize_name(name: str) -> str:
    """Normalize an item name or search term (lowercase, trimmed, single-spaced)."""
    return " ".join(name.lower().split())


# ============================================================================
# STEP 1: DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class GeoLocation:
    """Geographic coordinates in decimal degrees."""
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0

    def validate(self) -> "GeoLocation":
        """Return self, raising InvalidCoordinates if out of range."""
        if not self.is_valid():
            raise InvalidCoordinates(self.latitude, self.longitude)
        return self

    def distance_to(self, other: "GeoLocation") -> float:
        """
        Calculate Haversine distance between two locations in kilometers.

        NOTE: For road distances use googlemaps_client.RoadNetworkDistance.
        """
        lat1, lon1 = math.radians(self.latitude), math.radians(self.longitude)
        lat2, lon2 = math.radians(other.latitude), math.radians(other.longitude)

        dlat = lat2 - lat1
        dlon = lon2 - lon1

        a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        c = 2 * math.asin(min(1.0, math.sqrt(a)))

        return EARTH_RADIUS_KM * c

    def as_query(self) -> str:
        """Format as 'lat,lng' for the Google Maps APIs."""
        return f"{self.latitude},{self.longitude}"


@dataclass(frozen=True)
class Item:
    """
    A catalog item. Keyed by its normalized name.

    Attributes:
        id: Item identifier
        name: Display name as registered
        description, barcode, units: Catalog details (display only)
    """
    id: str
    name: str
    description: Optional[str] = None
    barcode: Optional[str] = None
    units: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_name(self.name)


@dataclass(frozen=True)
class Store:
    """
    Represents a store node in the shopping graph.

    Attributes:
        id: Store identifier
        name: Store display name
        location: GeoLocation of the store
        address, city, province: Postal address (display only)
        place_id: Google Maps place id when the store was geocoded
    """
    id: str
    name: str
    location: GeoLocation
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    place_id: Optional[str] = None


@dataclass(frozen=True)
class StockEntry:
    """
    Inventory relation between one item and one store.

    The entry existing is what makes the store stock the item. Quantity and
    price are shown to shoppers and never change store selection or routing.
    """
    item_key: str
    store_id: str
    quantity: Optional[int] = None
    price: Optional[float] = None


@dataclass(frozen=True)
class ShoppingList:
    """
    Set of required item keys. Duplicates (after normalization) collapse.

    Keeps first-seen order so responses echo the list the way it was sent.
    """
    items: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_names(cls, names: Sequence[str]) -> "ShoppingList":
        seen = {}
        for name in names:
            key = normalize_name(name)
            if key:
                seen.setdefault(key, None)
        return cls(items=tuple(seen))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


# ============================================================================
# STEP 2: DISTANCE METRICS
# ============================================================================

class DistanceMetric(ABC):
    """
    Symmetric, non-negative travel cost between two locations.

    Route solvers only call matrix(), so metrics backed by a remote service can
    answer a whole request in one batch.
    """

    name = "metric"

    @abstractmethod
    def distance(self, origin: GeoLocation, destination: GeoLocation) -> float:
        ...

    def matrix(self, points: Sequence[GeoLocation]) -> List[List[float]]:
        """Full pairwise distance matrix for points (diagonal is 0)."""
        n = len(points)
        result = [[0.0] * n for _ in range(n)]
        for i in range(n):
            for j in range(i + 1, n):
                d = self.distance(points[i], points[j])
                result[i][j] = d
                result[j][i] = d
        return result


class HaversineDistance(DistanceMetric):
    """Great-circle distance in kilometers."""

    name = "haversine"

    def distance(self, origin: GeoLocation, destination: GeoLocation) -> float:
        return origin.distance_to(destination)


class PlanarDistance(DistanceMetric):
    """Euclidean distance treating (longitude, latitude) as planar x/y."""

    name = "planar"

    def distance(self, origin: GeoLocation, destination: GeoLocation) -> float:
        return math.hypot(
            destination.longitude - origin.longitude,
            destination.latitude - origin.latitude,
        )
