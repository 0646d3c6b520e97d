"""
Route Orderer - visiting order for a fixed set of stores

Fixed-start, open-path traveling salesman: leave the shopper's current
location, visit every selected store exactly once, end at the last store.

Strategy is chosen purely by the number of stores:
- n <= EXACT_STORE_LIMIT: exact dynamic programming over subsets (Held-Karp),
  state = (visited set, last store)
- n >  EXACT_STORE_LIMIT: nearest-neighbour from the start, O(n^2)

Both break ties toward the lower store id, so retries with identical input
return the same order.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from exceptions import EmptySelection, SolverTimeout, UnknownStore
from inventory import InventorySnapshot
from shopping_graph import DistanceMetric, GeoLocation, HaversineDistance

logger = logging.getLogger(__name__)

EXACT_STORE_LIMIT = 12
STRATEGY_EXACT = "exact"
STRATEGY_NEAREST_NEIGHBOR = "nearest_neighbor"

# Masks processed between deadline checks
_DEADLINE_CHECK_INTERVAL = 256


@dataclass(frozen=True)
class Route:
    """
    An ordered visit of stores starting at `start`.

    Attributes:
        start: Current location of the shopper (not part of `stores`)
        stores: Store ids in visiting order
        legs: Distance of each leg; legs[0] is start -> stores[0]
        total_distance: Sum of legs, in the metric's unit
        strategy: "exact" or "nearest_neighbor"
    """
    start: GeoLocation
    stores: Tuple[str, ...]
    legs: Tuple[float, ...]
    total_distance: float
    strategy: str


def choose_strategy(store_count: int) -> str:
    return STRATEGY_EXACT if store_count <= EXACT_STORE_LIMIT else STRATEGY_NEAREST_NEIGHBOR


def _check_deadline(deadline: Optional[float]) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise SolverTimeout()


def _exact_order(dist: Sequence[Sequence[float]], n: int, deadline: Optional[float]) -> List[int]:
    """
    Held-Karp over store indices 0..n-1; node 0 of `dist` is the start.

    Returns:
        Store indices in visiting order
    """
    full = (1 << n) - 1
    cost = [[math.inf] * n for _ in range(1 << n)]
    parent = [[-1] * n for _ in range(1 << n)]

    for j in range(n):
        cost[1 << j][j] = dist[0][j + 1]

    for mask in range(1, full + 1):
        if mask % _DEADLINE_CHECK_INTERVAL == 0:
            _check_deadline(deadline)
        row = cost[mask]
        for last in range(n):
            base = row[last]
            if base == math.inf or not (mask >> last) & 1:
                continue
            for nxt in range(n):
                if (mask >> nxt) & 1:
                    continue
                nmask = mask | (1 << nxt)
                candidate = base + dist[last + 1][nxt + 1]
                if candidate < cost[nmask][nxt]:
                    cost[nmask][nxt] = candidate
                    parent[nmask][nxt] = last

    end = min(range(n), key=lambda j: (cost[full][j], j))

    order = []
    mask, node = full, end
    while node != -1:
        order.append(node)
        prev = parent[mask][node]
        mask ^= 1 << node
        node = prev
    order.reverse()
    return order


def _nearest_neighbor_order(dist: Sequence[Sequence[float]], n: int) -> List[int]:
    """Greedy: always go to the closest unvisited store (lower index on ties)."""
    unvisited = list(range(n))
    order = []
    current = 0  # start node in dist
    while unvisited:
        best = min(unvisited, key=lambda j: (dist[current][j + 1], j))
        order.append(best)
        unvisited.remove(best)
        current = best + 1
    return order


def _resolve_locations(store_ids: Sequence[str], snapshot: InventorySnapshot) -> List[GeoLocation]:
    missing = [store_id for store_id in store_ids if store_id not in snapshot.stores]
    if missing:
        raise UnknownStore(missing)
    return [snapshot.location_of(store_id) for store_id in store_ids]


def order_route(
    store_ids: Iterable[str],
    start: GeoLocation,
    snapshot: InventorySnapshot,
    metric: Optional[DistanceMetric] = None,
    deadline: Optional[float] = None,
) -> Route:
    """
    Find the visiting order minimizing total travel distance from `start`.

    Args:
        store_ids: Stores to visit (duplicates collapse)
        start: Shopper's current location
        snapshot: Inventory snapshot used to locate the stores
        metric: Distance metric (default: haversine km)
        deadline: time.monotonic() value after which the search gives up

    Returns:
        Route

    Raises:
        EmptySelection: If no stores are given
        UnknownStore: If any store id is not in the inventory
        SolverTimeout: If the exact search runs past `deadline`
    """
    metric = metric or HaversineDistance()
    stores = sorted(set(store_ids))
    if not stores:
        raise EmptySelection()

    points = [start] + _resolve_locations(stores, snapshot)
    dist = metric.matrix(points)
    _check_deadline(deadline)

    n = len(stores)
    strategy = choose_strategy(n)
    if strategy == STRATEGY_EXACT:
        order = _exact_order(dist, n, deadline)
    else:
        order = _nearest_neighbor_order(dist, n)

    legs = []
    current = 0
    for j in order:
        legs.append(dist[current][j + 1])
        current = j + 1

    route = Route(
        start=start,
        stores=tuple(stores[j] for j in order),
        legs=tuple(legs),
        total_distance=sum(legs),
        strategy=strategy,
    )
    logger.info(
        f"✓ Route ({strategy}, {metric.name}): {n} store(s), "
        f"total {route.total_distance:.3f}"
    )
    return route


def route_distance(
    store_ids: Sequence[str],
    start: GeoLocation,
    snapshot: InventorySnapshot,
    metric: Optional[DistanceMetric] = None,
) -> float:
    """Total distance of visiting store_ids in the given order from start."""
    metric = metric or HaversineDistance()
    points = [start] + _resolve_locations(store_ids, snapshot)
    return sum(metric.distance(points[i], points[i + 1]) for i in range(len(points) - 1))
