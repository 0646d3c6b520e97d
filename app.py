"""
FastAPI service for the InStock trip optimizer

Serves the REST contract the mobile client is built against:
- GET  /api/items?search_term=      items matching a name exactly
- POST /api/items                   add an item, returns its id
- GET  /api/items/all               all item names
- POST /api/items/multiple          items by id
- POST /api/stores/feweststores     fewest stores covering a shopping list
- GET  /api/stores/item?search_term= stores that have an item in stock
- POST /api/stores/shortestPath     visiting order for a set of stores

plus store registration and deletion, stock maintenance and a combined
shopping-trip call.

Run with:  uvicorn app:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.responses import PlainTextResponse

from config import Settings, get_settings, setup_logging
from database import DatabaseManager
from exceptions import setup_exception_handlers
from googlemaps_client import GoogleMapsClient, RoadNetworkDistance
from inventory import load_index
from inventory_service import InventoryService
from mock_data import MockDataManager
from optimization_service import FewestStoresResult, OptimizationService
from schemas import (
    FewestStoresRequest, FewestStoresResponse, ItemCreate, ItemLookup, ItemRecord,
    ItemStoreListResponse, ShoppingTripRequest, ShoppingTripResponse, ShortestPathRequest,
    StockCreate, StockedItemRecord, StockRemove, StockUpdate, StoreCreate, StoreRecord,
    StoreStockRecord, StoreWithItems,
)
from shopping_graph import DistanceMetric, HaversineDistance

logger = logging.getLogger(__name__)

ROUTE_DISTANCE_HEADER = "X-Route-Distance-Km"


def build_metric(settings: Settings, maps_client: Optional[GoogleMapsClient]) -> DistanceMetric:
    if settings.distance_metric == "road":
        if maps_client is None:
            raise ValueError("DISTANCE_METRIC=road requires GOOGLEMAPS_API_KEY")
        return RoadNetworkDistance(maps_client)
    return HaversineDistance()


# ============================================================================
# Dependencies
# ============================================================================

def get_optimizer(request: Request) -> OptimizationService:
    return request.app.state.optimizer


def get_inventory(request: Request) -> InventoryService:
    return request.app.state.inventory


def selection_payload(result: FewestStoresResult) -> dict:
    cover = result.cover
    return {
        "stores": [
            StoreWithItems(
                **StoreRecord.store_fields(visit.store),
                items=[StockedItemRecord.from_stock(item, entry) for item, entry in visit.items],
            )
            for visit in result.visits
        ],
        "uncovered": [key for key in cover.shopping_list if key in cover.uncovered],
        "unknownItems": [key for key in cover.shopping_list if key in cover.unknown],
        "partial": cover.partial,
    }


# ============================================================================
# /api/items
# ============================================================================

items_router = APIRouter(prefix="/api/items", tags=["Items"])


@items_router.get("", response_model=List[ItemRecord])
def get_items_by_search_term(
    search_term: str = Query(...),
    optimizer: OptimizationService = Depends(get_optimizer),
):
    return [ItemRecord.from_item(item) for item in optimizer.search_items(search_term)]


@items_router.post("", response_model=str)
def post_item(body: ItemCreate, inventory: InventoryService = Depends(get_inventory)):
    item = inventory.add_item(
        body.name,
        description=body.description,
        barcode=body.barcode,
        units=body.units,
    )
    return item.id


@items_router.get("/all", response_model=List[str])
def get_all_items(optimizer: OptimizationService = Depends(get_optimizer)):
    return optimizer.all_item_names()


@items_router.post("/multiple", response_model=List[ItemRecord])
def get_multiple_items(body: ItemLookup, optimizer: OptimizationService = Depends(get_optimizer)):
    return [ItemRecord.from_item(item) for item in optimizer.items_by_id(body.itemIds)]


@items_router.get("/store/{store_id}", response_model=List[StockedItemRecord])
def get_items_by_store(store_id: str, inventory: InventoryService = Depends(get_inventory)):
    return [StockedItemRecord.from_stock(item, entry) for item, entry in inventory.stock_at(store_id)]


@items_router.post("/store/{store_id}", response_class=PlainTextResponse)
def post_item_at_store(store_id: str, body: StockCreate, inventory: InventoryService = Depends(get_inventory)):
    inventory.set_stock(store_id, body.itemId, quantity=body.quantity, price=body.price)
    return "OK"


@items_router.put("/store/{store_id}/{item_id}", response_class=PlainTextResponse)
def put_item_at_store(
    store_id: str,
    item_id: str,
    body: StockUpdate,
    inventory: InventoryService = Depends(get_inventory),
):
    inventory.set_stock(store_id, item_id, quantity=body.quantity, price=body.price)
    return "OK"


@items_router.delete("/store/{store_id}", response_class=PlainTextResponse)
def delete_items_from_store(store_id: str, body: StockRemove, inventory: InventoryService = Depends(get_inventory)):
    inventory.remove_stock(store_id, body.itemIds)
    return "OK"


# ============================================================================
# /api/stores
# ============================================================================

stores_router = APIRouter(prefix="/api/stores", tags=["Stores"])


@stores_router.post("/feweststores", response_model=FewestStoresResponse)
def fewest_stores(body: FewestStoresRequest, optimizer: OptimizationService = Depends(get_optimizer)):
    location = body.location.to_geo() if body.location else None
    result = optimizer.fewest_stores(body.shoppingList, location=location, radius_km=body.radius)
    return selection_payload(result)


@stores_router.post("/shortestPath", response_model=List[str])
def shortest_path(
    body: ShortestPathRequest,
    response: Response,
    optimizer: OptimizationService = Depends(get_optimizer),
):
    # Waypoints only: the start location is implicit and not echoed back
    route = optimizer.shortest_path(body.stores, body.location.to_geo())
    response.headers[ROUTE_DISTANCE_HEADER] = f"{route.total_distance:.3f}"
    return list(route.stores)


@stores_router.post("/shoppingtrip", response_model=ShoppingTripResponse)
def shopping_trip(body: ShoppingTripRequest, optimizer: OptimizationService = Depends(get_optimizer)):
    plan = optimizer.plan_trip(body.shoppingList, body.location.to_geo(), radius_km=body.radius)
    payload = selection_payload(plan.selection)
    if plan.route is not None:
        payload["route"] = list(plan.route.stores)
        payload["distanceKm"] = round(plan.route.total_distance, 3)
    return payload


@stores_router.get("/item", response_model=ItemStoreListResponse)
def get_stores_for_item(
    search_term: str = Query(...),
    optimizer: OptimizationService = Depends(get_optimizer),
):
    return {
        "stores": [
            StoreStockRecord(**StoreRecord.store_fields(store), quantity=entry.quantity, price=entry.price)
            for store, entry in optimizer.stores_for_item(search_term)
        ]
    }


@stores_router.get("", response_model=List[StoreRecord])
def get_stores(inventory: InventoryService = Depends(get_inventory)):
    return [StoreRecord.from_store(store) for store in inventory.list_stores()]


@stores_router.post("", response_model=str)
def post_store(body: StoreCreate, inventory: InventoryService = Depends(get_inventory)):
    store = inventory.register_store(
        body.name,
        address=body.address,
        city=body.city,
        province=body.province,
        latitude=body.lat,
        longitude=body.lng,
    )
    return store.id


@stores_router.get("/{store_id}", response_model=StoreRecord)
def get_store(store_id: str, inventory: InventoryService = Depends(get_inventory)):
    return StoreRecord.from_store(inventory.get_store(store_id))


@stores_router.delete("/{store_id}", response_model=StoreRecord)
def delete_store(store_id: str, inventory: InventoryService = Depends(get_inventory)):
    return StoreRecord.from_store(inventory.delete_store(store_id))


# ============================================================================
# Application
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    db_manager: Optional[DatabaseManager] = None,
    maps_client: Optional[GoogleMapsClient] = None,
    metric: Optional[DistanceMetric] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Runtime settings (default: read from the environment)
        db_manager: Pre-built DatabaseManager (tests pass an in-memory one)
        maps_client: Google Maps client for geocoding / road distances
        metric: Override the routing distance metric
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        setup_logging(cfg.log_level)
        manager = db_manager or DatabaseManager(cfg.database_url)
        manager.init_db()

        if cfg.seed_demo_data:
            with manager.session_scope() as session:
                MockDataManager.seed_default_data(session)

        client = maps_client
        if client is None and cfg.googlemaps_api_key:
            client = GoogleMapsClient(cfg.googlemaps_api_key)

        index = load_index(manager.engine)
        app.state.db_manager = manager
        app.state.index = index
        app.state.optimizer = OptimizationService(
            index,
            metric=metric or build_metric(cfg, client),
            solver_timeout=cfg.solver_timeout_seconds,
            default_radius_km=cfg.default_radius_km,
        )
        app.state.inventory = InventoryService(manager, index, maps_client=client)
        logger.info("✓ InStock optimizer ready")
        try:
            yield
        finally:
            if db_manager is None:
                manager.close()

    app = FastAPI(title="InStock trip optimizer", lifespan=lifespan)
    app.include_router(items_router)
    app.include_router(stores_router)

    @app.get("/health")
    def health(request: Request):
        return {
            "status": "ok",
            "database": request.app.state.db_manager.health_check(),
            "inventoryVersion": request.app.state.index.snapshot().version,
        }

    setup_exception_handlers(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000)
