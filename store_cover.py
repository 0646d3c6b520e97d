"""
Store Cover Solver - fewest stores that together stock a shopping list

This is minimum set cover, solved with the greedy approximation:
- Repeatedly pick the store covering the most still-uncovered items
- Ties go to the lowest store id, so identical input gives identical output
- Stop when every coverable item is covered

A pruning pass then drops any chosen store whose items are all available at
the other chosen stores, so no store in the result is redundant. Items that
are unknown, or that no candidate store has in stock, are reported next to
the selection instead of failing the request.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from exceptions import EmptyShoppingList, PartialCoverage, UnknownItem
from inventory import InventorySnapshot
from shopping_graph import ShoppingList

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoverResult:
    """
    Output of the cover solver.

    Attributes:
        shopping_list: Normalized, de-duplicated item keys in request order
        stores: Chosen store ids in the order the greedy step picked them
        coverage: store id -> shopping list items that store has in stock
        assignment: item key -> store id the item should be bought at
        uncovered: Known items that no candidate store has in stock
        unknown: Items that were never registered
    """
    shopping_list: Tuple[str, ...]
    stores: Tuple[str, ...]
    coverage: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    assignment: Mapping[str, str] = field(default_factory=dict)
    uncovered: FrozenSet[str] = frozenset()
    unknown: FrozenSet[str] = frozenset()

    @property
    def partial(self) -> bool:
        return bool(self.uncovered or self.unknown)

    def raise_for_partial(self) -> None:
        """Raise PartialCoverage if any item could not be covered."""
        if self.partial:
            raise PartialCoverage(self.uncovered, self.unknown)


def greedy_cover(universe: Set[str], store_items: Mapping[str, Set[str]]) -> List[str]:
    """
    Greedy set cover over store_items.

    Args:
        universe: Item keys to cover
        store_items: store id -> item keys it stocks

    Returns:
        Chosen store ids in pick order
    """
    remaining = set(universe)
    candidates = sorted(store_items)
    chosen: List[str] = []

    while remaining:
        best_store, best_gain = None, 0
        for store_id in candidates:
            gain = len(store_items[store_id] & remaining)
            if gain > best_gain:
                best_store, best_gain = store_id, gain

        if best_store is None:
            break

        chosen.append(best_store)
        remaining -= store_items[best_store]
        logger.debug(f"  picked {best_store} (+{best_gain}), {len(remaining)} left")

    return chosen


def prune_redundant(chosen: Sequence[str], store_items: Mapping[str, Set[str]]) -> List[str]:
    """Drop stores whose items are all stocked by the other chosen stores (latest picks first)."""
    kept = list(chosen)
    for store_id in reversed(list(chosen)):
        others: Set[str] = set()
        for other in kept:
            if other != store_id:
                others |= store_items[other]
        if store_items[store_id] <= others:
            kept.remove(store_id)
            logger.debug(f"  pruned redundant store {store_id}")
    return kept


def solve_store_cover(
    shopping_list: Union[ShoppingList, Iterable[str]],
    snapshot: InventorySnapshot,
    candidate_stores: Optional[FrozenSet[str]] = None,
) -> CoverResult:
    """
    Find a small set of stores that together stock every item on the list.

    Args:
        shopping_list: ShoppingList or raw item names
        snapshot: Inventory snapshot read for the whole solve
        candidate_stores: Restrict the search to these store ids (None = all)

    Returns:
        CoverResult; partial results carry `uncovered` / `unknown`

    Raises:
        EmptyShoppingList: If the list has no items after normalization
    """
    if not isinstance(shopping_list, ShoppingList):
        shopping_list = ShoppingList.from_names(list(shopping_list))
    if not shopping_list:
        raise EmptyShoppingList()

    carriers: Dict[str, FrozenSet[str]] = {}
    unknown: Set[str] = set()
    uncovered: Set[str] = set()

    for key in shopping_list:
        try:
            stores = snapshot.stores_for(key)
        except UnknownItem:
            unknown.add(key)
            continue
        if candidate_stores is not None:
            stores = stores & candidate_stores
        if stores:
            carriers[key] = stores
        else:
            uncovered.add(key)

    # Invert to store -> items of this list it stocks
    store_items: Dict[str, Set[str]] = {}
    for key, stores in carriers.items():
        for store_id in stores:
            store_items.setdefault(store_id, set()).add(key)

    chosen = greedy_cover(set(carriers), store_items)
    chosen = prune_redundant(chosen, store_items)

    assignment: Dict[str, str] = {}
    for store_id in chosen:
        for key in store_items[store_id]:
            assignment.setdefault(key, store_id)

    coverage = {
        store_id: tuple(key for key in shopping_list if key in store_items[store_id])
        for store_id in chosen
    }

    result = CoverResult(
        shopping_list=shopping_list.items,
        stores=tuple(chosen),
        coverage=coverage,
        assignment=assignment,
        uncovered=frozenset(uncovered),
        unknown=frozenset(unknown),
    )

    if result.partial:
        logger.info(
            f"Cover: {len(chosen)} store(s) for {len(shopping_list)} item(s), "
            f"uncovered={sorted(uncovered)} unknown={sorted(unknown)}"
        )
    else:
        logger.info(f"✓ Cover: {len(chosen)} store(s) for {len(shopping_list)} item(s)")

    return result
