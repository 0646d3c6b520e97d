"""
End-to-end tests of the REST API over an in-memory database seeded with the
demo inventory (see mock_data.py).
"""

from unittest.mock import MagicMock

import pytest
from googlemaps.exceptions import ApiError

from app import ROUTE_DISTANCE_HEADER
from googlemaps_client import GoogleMapsClient
from inventory import load_index

UBC = {"latitude": 49.2663, "longitude": -123.2440}
GASTOWN = {"latitude": 49.2846566, "longitude": -123.1093607}


def store_ids_by_name(client):
    response = client.get("/api/stores")
    assert response.status_code == 200
    return {store["name"]: store["_id"] for store in response.json()}


def item_id(client, name):
    return client.get("/api/items", params={"search_term": name}).json()[0]["_id"]


# ============================================================================
# Items
# ============================================================================

def test_search_items_is_exact_and_case_insensitive(client):
    response = client.get("/api/items", params={"search_term": "APPLE"})

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["name"] == "apple"
    assert body[0]["barcode"] == "3065"
    assert set(body[0]) == {"_id", "name", "description", "barcode", "units"}

    assert client.get("/api/items", params={"search_term": "app"}).json() == []


def test_all_item_names(client):
    response = client.get("/api/items/all")

    assert response.status_code == 200
    assert response.json() == ["apple", "Banana", "bread", "Butter", "cookies", "eggs", "milk"]


def test_add_item_returns_id_and_rejects_duplicates(client):
    response = client.post("/api/items", json={"name": "Durian", "units": "1 ea"})

    assert response.status_code == 200
    new_id = response.json()
    assert isinstance(new_id, str) and new_id
    assert item_id(client, "durian") == new_id

    duplicate = client.post("/api/items", json={"name": " durian "})
    assert duplicate.status_code == 409
    assert duplicate.json()["success"] is False


def test_add_item_requires_name(client):
    assert client.post("/api/items", json={"description": "nameless"}).status_code == 422


# ============================================================================
# Fewest stores
# ============================================================================

def test_fewest_stores_single_store(client):
    body = {"shoppingList": ["cookies", "apple", "banana", "butter"], "radius": 15}

    response = client.post("/api/stores/feweststores", json=body)

    assert response.status_code == 200
    payload = response.json()
    assert payload["partial"] is False
    assert payload["uncovered"] == [] and payload["unknownItems"] == []
    assert len(payload["stores"]) == 1
    store = payload["stores"][0]
    assert store["name"] == "Gastown's"
    assert store["lat"] == pytest.approx(49.2846566)
    assert [item["name"] for item in store["items"]] == ["cookies", "apple", "Banana", "Butter"]
    assert store["items"][2]["quantity"] == 75
    assert store["items"][2]["price"] == pytest.approx(0.61)


def test_fewest_stores_empty_list_is_not_found(client):
    response = client.post("/api/stores/feweststores", json={})

    assert response.status_code == 404
    assert response.json()["error"] == "Shopping list is empty"


def test_fewest_stores_invalid_coordinates_is_bad_request(client):
    body = {"shoppingList": ["apple"], "location": {"latitude": -200, "longitude": 200}, "radius": 2}

    assert client.post("/api/stores/feweststores", json=body).status_code == 400


def test_fewest_stores_reports_partial_coverage(client):
    body = {"shoppingList": ["cookies", "milk", "durian", "Cookies"], "location": GASTOWN, "radius": 1}

    response = client.post("/api/stores/feweststores", json=body)

    assert response.status_code == 200
    payload = response.json()
    assert payload["partial"] is True
    assert [store["name"] for store in payload["stores"]] == ["Gastown's"]
    assert payload["uncovered"] == ["milk"]
    assert payload["unknownItems"] == ["durian"]


def test_fewest_stores_needs_several_stores(client):
    body = {"shoppingList": ["milk", "eggs", "bread", "butter"]}

    payload = client.post("/api/stores/feweststores", json=body).json()

    # butter is only in Gastown and no other store has milk, eggs and bread together
    names = {store["name"] for store in payload["stores"]}
    assert len(names) == 3
    assert "Gastown's" in names
    assert payload["partial"] is False
    bought = [item["name"] for store in payload["stores"] for item in store["items"]]
    assert {"milk", "eggs", "bread", "Butter"} <= set(bought)


# ============================================================================
# Stores for item
# ============================================================================

def test_stores_for_item_include_zero_quantity(client):
    response = client.get("/api/stores/item", params={"search_term": "bread"})

    assert response.status_code == 200
    stores = response.json()["stores"]
    assert [(store["name"], store["quantity"]) for store in stores] == [
        ("Kitsilano Market", 0),
        ("Main Street Foods", 8),
    ]


def test_stores_for_unknown_item_is_not_found(client):
    response = client.get("/api/stores/item", params={"search_term": "durian"})

    assert response.status_code == 404
    assert response.json()["details"] == {"items": ["durian"]}


# ============================================================================
# Shortest path
# ============================================================================

def test_shortest_path_returns_waypoints_only(client):
    ids = store_ids_by_name(client)
    body = {"stores": list(ids.values()), "location": UBC}

    response = client.post("/api/stores/shortestPath", json=body)

    assert response.status_code == 200
    route = response.json()
    assert sorted(route) == sorted(ids.values())
    # The UBC store is at the start location, so it comes first
    assert route[0] == ids["UBC Village Grocer"]
    assert float(response.headers[ROUTE_DISTANCE_HEADER]) > 0


def test_shortest_path_without_stores_is_bad_request(client):
    response = client.post("/api/stores/shortestPath", json={"stores": [], "location": UBC})
    assert response.status_code == 400


def test_shortest_path_unknown_store_is_not_found(client):
    response = client.post("/api/stores/shortestPath", json={"stores": ["nope"], "location": UBC})

    assert response.status_code == 404
    assert response.json()["details"] == {"stores": ["nope"]}


def test_shortest_path_requires_location(client):
    assert client.post("/api/stores/shortestPath", json={"stores": ["x"]}).status_code == 422


def test_solver_timeout_is_retryable(make_client):
    client = make_client(solver_timeout_seconds=-1.0)
    ids = store_ids_by_name(client)

    response = client.post("/api/stores/shortestPath", json={"stores": list(ids.values()), "location": UBC})

    assert response.status_code == 503
    assert response.json()["retryable"] is True


# ============================================================================
# Shopping trip
# ============================================================================

def test_shopping_trip_covers_then_routes(client):
    body = {"shoppingList": ["cookies", "milk", "eggs"], "location": UBC, "radius": 20}

    response = client.post("/api/stores/shoppingtrip", json=body)

    assert response.status_code == 200
    payload = response.json()
    selected = sorted(store["_id"] for store in payload["stores"])
    assert sorted(payload["route"]) == selected
    assert payload["distanceKm"] > 0


def test_shopping_trip_with_nothing_coverable(client):
    body = {"shoppingList": ["durian"], "location": UBC}

    payload = client.post("/api/stores/shoppingtrip", json=body).json()

    assert payload["stores"] == [] and payload["route"] == []
    assert payload["distanceKm"] is None
    assert payload["unknownItems"] == ["durian"]


# ============================================================================
# Stores and stock
# ============================================================================

def test_register_store_and_stock_it(client):
    response = client.post("/api/stores", json={
        "name": "Yaletown Deli",
        "address": "1100 Mainland St",
        "city": "Vancouver",
        "province": "BC",
        "lat": 49.2754,
        "lng": -123.1216,
    })
    assert response.status_code == 200
    store_id = response.json()

    milk_id = item_id(client, "milk")
    assert client.post(f"/api/items/store/{store_id}", json={"itemId": milk_id, "quantity": 3, "price": 4.0}).text == "OK"

    stock = client.get(f"/api/items/store/{store_id}").json()
    assert [(item["name"], item["quantity"]) for item in stock] == [("milk", 3)]

    near = {"shoppingList": ["milk"], "location": {"latitude": 49.2754, "longitude": -123.1216}, "radius": 0.5}
    payload = client.post("/api/stores/feweststores", json=near).json()
    assert [store["_id"] for store in payload["stores"]] == [store_id]

    assert client.put(f"/api/items/store/{store_id}/{milk_id}", json={"quantity": 0}).status_code == 200
    payload = client.post("/api/stores/feweststores", json=near).json()
    assert [store["_id"] for store in payload["stores"]] == [store_id]
    assert payload["stores"][0]["items"][0]["quantity"] == 0

    response = client.request("DELETE", f"/api/items/store/{store_id}", json={"itemIds": [milk_id]})
    assert response.status_code == 200
    assert client.get(f"/api/items/store/{store_id}").json() == []
    payload = client.post("/api/stores/feweststores", json=near).json()
    assert payload["uncovered"] == ["milk"]


def test_stock_for_unknown_store_is_not_found(client):
    milk_id = item_id(client, "milk")
    response = client.post("/api/items/store/ghost", json={"itemId": milk_id})
    assert response.status_code == 404


def test_get_store(client):
    ids = store_ids_by_name(client)

    response = client.get(f"/api/stores/{ids['Kitsilano Market']}")

    assert response.status_code == 200
    assert response.json()["address"] == "2210 West 4th Avenue"
    assert client.get("/api/stores/ghost").status_code == 404


def test_register_store_without_coordinates_needs_geocoder(client):
    response = client.post("/api/stores", json={"name": "Somewhere", "address": "1 Main St"})
    assert response.status_code == 400


def test_register_store_geocodes_address(make_client):
    gmaps = MagicMock()
    gmaps.geocode.return_value = [{
        "geometry": {"location": {"lat": 49.2606, "lng": -123.1140}},
        "formatted_address": "500 W 12th Ave, Vancouver, BC",
        "place_id": "place-123",
    }]
    client = make_client(maps_client=GoogleMapsClient(api_key="test", client=gmaps))

    response = client.post("/api/stores", json={
        "name": "City Hall Market",
        "address": "500 W 12th Ave",
        "city": "Vancouver",
        "province": "BC",
    })

    assert response.status_code == 200
    store = client.get(f"/api/stores/{response.json()}").json()
    assert store["lat"] == pytest.approx(49.2606)
    assert store["place_id"] == "place-123"
    gmaps.geocode.assert_called_once_with("500 W 12th Ave Vancouver BC")


def test_health(client):
    payload = client.get("/health").json()
    assert payload["status"] == "ok"
    assert payload["database"] is True


def test_add_item_with_blank_name_is_bad_request(client):
    response = client.post("/api/items", json={"name": "   "})
    assert response.status_code == 400
    assert response.json()["error"] == "Item name must not be blank"


def test_register_store_with_unresolvable_address(make_client):
    gmaps = MagicMock()
    gmaps.geocode.return_value = []
    client = make_client(maps_client=GoogleMapsClient(api_key="test", client=gmaps))

    response = client.post("/api/stores", json={"name": "Nowhere", "address": "zzz"})

    assert response.status_code == 400
    assert "zzz" in response.json()["error"]


def test_register_store_when_geocoding_fails(make_client):
    gmaps = MagicMock()
    gmaps.geocode.side_effect = ApiError("REQUEST_DENIED", "API key invalid")
    client = make_client(maps_client=GoogleMapsClient(api_key="test", client=gmaps))

    response = client.post("/api/stores", json={"name": "Denied", "address": "1 Main St"})

    assert response.status_code == 502
    assert "Geocoding failed" in response.json()["error"]


def test_multiple_items_by_id(client):
    milk_id = item_id(client, "milk")
    eggs_id = item_id(client, "eggs")

    response = client.post("/api/items/multiple", json={"itemIds": [eggs_id, "ghost", milk_id, eggs_id]})

    assert response.status_code == 200
    assert [item["name"] for item in response.json()] == ["eggs", "milk"]
    assert client.post("/api/items/multiple", json={"itemIds": []}).json() == []


def test_delete_store(client):
    ids = store_ids_by_name(client)
    gastown = ids["Gastown's"]

    response = client.delete(f"/api/stores/{gastown}")

    assert response.status_code == 200
    assert response.json()["name"] == "Gastown's"
    assert client.get(f"/api/stores/{gastown}").status_code == 404
    assert client.delete(f"/api/stores/{gastown}").status_code == 404

    # Butter was only stocked in Gastown
    payload = client.post("/api/stores/feweststores", json={"shoppingList": ["butter"]}).json()
    assert payload["stores"] == []
    assert payload["uncovered"] == ["butter"]

    reloaded = load_index(client.app.state.db_manager.engine).snapshot()
    assert len(reloaded.stores) == 3
    assert len(reloaded.stock) == 9
