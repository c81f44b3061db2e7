from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.parts import router as parts_router
from backend.app.api.v1.endpoints.vendors import router as vendors_router
from backend.app.api.v1.endpoints.part_locations import router as part_locations_router
from backend.app.api.v1.endpoints.stock import router as stock_router
from backend.app.api.v1.endpoints.stock_movements import router as stock_movements_router
from backend.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from backend.app.api.v1.endpoints.usage import router as usage_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(parts_router, tags=["parts"])
router.include_router(vendors_router, tags=["vendors"])
router.include_router(part_locations_router, tags=["part_locations"])
router.include_router(stock_router, tags=["stock"])
router.include_router(stock_movements_router, tags=["stock_movements"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(usage_router, tags=["usage"])
