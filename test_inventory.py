import threading

import pytest

from conftest import make_snapshot
from exceptions import DuplicateItem, InvalidCoordinates, UnknownItem, UnknownStore
from inventory import InventoryIndex, load_index
from mock_data import MockDataManager
from shopping_graph import GeoLocation, Item, ShoppingList, Store
from store_cover import solve_store_cover


def test_stores_for_known_item(index):
    assert index.stores_for("itema") == frozenset({"store1", "store2"})
    assert index.stores_for("  ITEMB ") == frozenset({"store2"})


def test_stores_for_unknown_item_raises(index):
    with pytest.raises(UnknownItem) as exc_info:
        index.stores_for("durian")
    assert exc_info.value.items == ["durian"]


def test_registered_item_without_stock_has_no_stores(index):
    index.register_item(Item(id="item-c", name="ItemC"))
    assert index.stores_for("itemc") == frozenset()


def test_location_of(index):
    assert index.location_of("store1") == GeoLocation(49.28, -123.11)
    with pytest.raises(UnknownStore):
        index.location_of("nowhere")


def test_zero_quantity_still_stocks_the_item(index):
    index.set_stock("itemb", "store1", quantity=0, price=1.5)

    assert index.stores_for("itemb") == frozenset({"store1", "store2"})
    entry = index.snapshot().stock_entry("itemb", "store1")
    assert entry.quantity == 0
    assert entry.price == 1.5

    index.remove_stock("itemb", "store1")
    assert index.stores_for("itemb") == frozenset({"store2"})


def test_zero_quantity_does_not_change_the_cover(index):
    index.set_stock("itema", "store1", quantity=0)
    index.remove_stock("itema", "store2")

    result = solve_store_cover(ShoppingList.from_names(["itema"]), index.snapshot())

    assert result.stores == ("store1",)
    assert not result.partial


def test_unknown_quantity_stocks_the_item(index):
    entry = index.set_stock("itemb", "store1")
    assert entry.quantity is None
    assert "store1" in index.stores_for("itemb")


def test_remove_stock(index):
    index.remove_stock("itema", "store2")

    assert index.stores_for("itema") == frozenset({"store1"})
    assert [e.item_key for e in index.snapshot().stock_at("store2")] == ["itemb"]
    # Removing a missing pair is a no-op
    version = index.snapshot().version
    index.remove_stock("itema", "store2")
    assert index.snapshot().version == version


def test_snapshot_is_unaffected_by_later_updates(index):
    before = index.snapshot()

    index.set_stock("itemb", "store1", quantity=2)

    assert before.stores_for("itemb") == frozenset({"store2"})
    assert index.stores_for("itemb") == frozenset({"store1", "store2"})
    assert index.snapshot().version == before.version + 1


def test_failed_update_leaves_index_unchanged(index):
    before = index.snapshot()

    with pytest.raises(UnknownStore):
        index.set_stock("itema", "ghost", quantity=1)
    with pytest.raises(UnknownItem):
        index.set_stock("durian", "store1", quantity=1)

    assert index.snapshot() is before


def test_duplicate_item_name_is_rejected(index):
    with pytest.raises(DuplicateItem):
        index.register_item(Item(id="other-id", name="ItemA"))


def test_concurrent_updates_are_not_lost():
    stores = [f"s{i}" for i in range(8)]
    items = [f"item{i}" for i in range(25)]
    index = InventoryIndex(make_snapshot({item: [] for item in items}, extra_stores=tuple(stores)))

    def writer(store_id):
        for item in items:
            index.set_stock(item, store_id, quantity=3)

    threads = [threading.Thread(target=writer, args=(store_id,)) for store_id in stores]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = index.snapshot()
    assert len(snapshot.stock) == len(stores) * len(items)
    assert all(snapshot.stores_for(item) == frozenset(stores) for item in items)
    assert snapshot.version == len(stores) * len(items)


def test_stores_within_radius():
    snapshot = make_snapshot({}, locations={
        "gastown": (49.2846566, -123.1093607),
        "ubc": (49.2663, -123.2440),
    })
    near_gastown = GeoLocation(49.2827, -123.1207)

    assert snapshot.stores_within(near_gastown, 2.0) == frozenset({"gastown"})
    assert snapshot.stores_within(near_gastown, 15.0) == frozenset({"gastown", "ubc"})


@pytest.mark.parametrize("lat,lng", [(-200.0, 200.0), (91.0, 0.0), (0.0, -180.5)])
def test_invalid_coordinates(lat, lng):
    with pytest.raises(InvalidCoordinates):
        GeoLocation(lat, lng).validate()


def test_valid_coordinates():
    location = GeoLocation(49.123, -123.123)
    assert location.validate() is location


def test_load_index_from_seeded_database(db_manager):
    with db_manager.session_scope() as session:
        assert MockDataManager.seed_default_data(session) == 4
    with db_manager.session_scope() as session:
        assert MockDataManager.seed_default_data(session) == 0

    index = load_index(db_manager.engine)
    snapshot = index.snapshot()

    assert len(snapshot.stores) == 4
    assert len(snapshot.items) == 7
    assert len(snapshot.stock) == 13

    main_street = next(s for s in snapshot.stores.values() if s.name == "Main Street Foods")
    kits = next(s for s in snapshot.stores.values() if s.name == "Kitsilano Market")
    # Kitsilano lists bread with quantity 0 and still stocks it
    assert snapshot.stores_for("bread") == frozenset({main_street.id, kits.id})
    assert snapshot.stock_entry("bread", kits.id).quantity == 0
    assert snapshot.stock_entry("apple", kits.id).price == pytest.approx(2.49)
    assert snapshot.item("banana").name == "Banana"
    assert snapshot.item("banana").units == "0.3 kg"


def test_load_index_from_empty_database(db_manager):
    snapshot = load_index(db_manager.engine).snapshot()
    assert not snapshot.items
    assert not snapshot.stores


def test_register_store(index):
    index.register_store(Store(id="store3", name="Store 3", location=GeoLocation(1.0, 2.0)))
    assert index.location_of("store3") == GeoLocation(1.0, 2.0)


def test_remove_store_drops_its_stock(index):
    before = index.snapshot()

    removed = index.remove_store("store2")

    assert removed.id == "store2"
    assert index.stores_for("itema") == frozenset({"store1"})
    assert index.stores_for("itemb") == frozenset()
    assert set(index.snapshot().stock) == {("itema", "store1")}
    assert before.stores_for("itemb") == frozenset({"store2"})
    with pytest.raises(UnknownStore):
        index.remove_store("store2")
