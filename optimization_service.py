"""
Optimization service - the request/response core behind the store endpoints

Orchestrates:
1. Fewest stores:   ShoppingList -> Store Cover Solver -> selection + per-store coverage
2. Shortest path:   store ids + start -> Route Orderer -> Route
3. Shopping trip:   ShoppingList -> cover -> route over the chosen stores

Every call reads a single InventorySnapshot and keeps no state between calls.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from exceptions import UnknownItem
from inventory import InventoryIndex, InventorySnapshot
from route_solver import Route, order_route
from shopping_graph import (
    DistanceMetric, GeoLocation, HaversineDistance, Item, ShoppingList, StockEntry, Store,
)
from store_cover import CoverResult, solve_store_cover

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreVisit:
    """A chosen store and the shopping list items it has in stock."""
    store: Store
    items: Tuple[Tuple[Item, StockEntry], ...]


@dataclass(frozen=True)
class FewestStoresResult:
    cover: CoverResult
    visits: Tuple[StoreVisit, ...]


@dataclass(frozen=True)
class TripPlan:
    selection: FewestStoresResult
    route: Optional[Route]


class OptimizationService:
    """Stateless facade over the cover solver and route orderer"""

    def __init__(
        self,
        index: InventoryIndex,
        metric: Optional[DistanceMetric] = None,
        solver_timeout: Optional[float] = 5.0,
        default_radius_km: float = 5.0,
    ):
        """
        Args:
            index: Inventory index to read snapshots from
            metric: Distance metric for routing (default haversine)
            solver_timeout: Seconds allowed per route search (None = unbounded)
            default_radius_km: Radius used when a location is given without one
        """
        self.index = index
        self.metric = metric or HaversineDistance()
        self.solver_timeout = solver_timeout
        self.default_radius_km = default_radius_km

    def _deadline(self) -> Optional[float]:
        if self.solver_timeout is None:
            return None
        return time.monotonic() + self.solver_timeout

    def _candidates(
        self,
        snapshot: InventorySnapshot,
        location: Optional[GeoLocation],
        radius_km: Optional[float],
    ):
        if location is None:
            return None
        location.validate()
        radius = self.default_radius_km if radius_km is None else radius_km
        candidates = snapshot.stores_within(location, radius)
        logger.info(f"{len(candidates)} store(s) within {radius} km of ({location.latitude}, {location.longitude})")
        return candidates

    def _select(
        self,
        snapshot: InventorySnapshot,
        shopping_list: Iterable[str],
        location: Optional[GeoLocation],
        radius_km: Optional[float],
    ) -> FewestStoresResult:
        candidates = self._candidates(snapshot, location, radius_km)
        cover = solve_store_cover(ShoppingList.from_names(list(shopping_list)), snapshot, candidates)

        visits = []
        for store_id in cover.stores:
            visits.append(
                StoreVisit(
                    store=snapshot.store(store_id),
                    items=tuple(
                        (snapshot.items[key], snapshot.stock[(key, store_id)])
                        for key in cover.coverage[store_id]
                    ),
                )
            )
        return FewestStoresResult(cover=cover, visits=tuple(visits))

    def fewest_stores(
        self,
        shopping_list: Iterable[str],
        location: Optional[GeoLocation] = None,
        radius_km: Optional[float] = None,
    ) -> FewestStoresResult:
        """
        Fewest stores that stock the shopping list.

        Args:
            shopping_list: Item names
            location: If given, only stores within radius_km are considered
            radius_km: Search radius (defaults to default_radius_km)

        Returns:
            FewestStoresResult (possibly partial)

        Raises:
            EmptyShoppingList: If the list is empty
            InvalidCoordinates: If location is out of range
        """
        return self._select(self.index.snapshot(), shopping_list, location, radius_km)

    def shortest_path(self, store_ids: Iterable[str], start: GeoLocation) -> Route:
        """
        Visiting order for the given stores from start.

        Raises:
            EmptySelection, UnknownStore, InvalidCoordinates, SolverTimeout
        """
        start.validate()
        return order_route(
            store_ids,
            start,
            self.index.snapshot(),
            metric=self.metric,
            deadline=self._deadline(),
        )

    def plan_trip(
        self,
        shopping_list: Iterable[str],
        start: GeoLocation,
        radius_km: Optional[float] = None,
    ) -> TripPlan:
        """Cover the shopping list, then order the chosen stores from start."""
        snapshot = self.index.snapshot()
        selection = self._select(snapshot, shopping_list, start, radius_km)

        route = None
        if selection.cover.stores:
            route = order_route(
                selection.cover.stores,
                start,
                snapshot,
                metric=self.metric,
                deadline=self._deadline(),
            )
        return TripPlan(selection=selection, route=route)

    def stores_for_item(self, term: str) -> List[Tuple[Store, StockEntry]]:
        """Stores that have the item in stock, ordered by store name then id."""
        snapshot = self.index.snapshot()
        item = snapshot.item(term)
        stores = [snapshot.store(store_id) for store_id in snapshot.stores_for(item.key)]
        stores.sort(key=lambda s: (s.name, s.id))
        return [(store, snapshot.stock[(item.key, store.id)]) for store in stores]

    def items_by_id(self, item_ids: Iterable[str]) -> List[Item]:
        """Items with the given ids, in request order. Unknown ids are skipped."""
        by_id = {item.id: item for item in self.index.snapshot().items.values()}
        return [by_id[item_id] for item_id in dict.fromkeys(item_ids) if item_id in by_id]

    def search_items(self, term: str) -> List[Item]:
        """Items whose name matches term exactly (case-insensitive)."""
        snapshot = self.index.snapshot()
        try:
            return [snapshot.item(term)]
        except UnknownItem:
            return []

    def all_item_names(self) -> List[str]:
        snapshot = self.index.snapshot()
        return sorted((item.name for item in snapshot.items.values()), key=str.lower)
