from fastapi import APIRouter

from backoffice.app.api.v1.endpoints.health import router as health_router
from backoffice.app.api.v1.endpoints.products import router as products_router
from backoffice.app.api.v1.endpoints.suppliers import router as suppliers_router
from backoffice.app.api.v1.endpoints.bills import router as bills_router
from backoffice.app.api.v1.endpoints.disputes import router as disputes_router
from backoffice.app.api.v1.endpoints.dlc import router as dlc_router
from backoffice.app.api.v1.endpoints.stock import router as stock_router
from backoffice.app.api.v1.endpoints.stock_movements import router as stock_movements_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(bills_router, tags=["bills"])
router.include_router(disputes_router, tags=["disputes"])
router.include_router(dlc_router, tags=["dlc"])
router.include_router(stock_router, tags=["stock"])
router.include_router(stock_movements_router, tags=["stock_movements"])
