"""Fulfillment service routers."""

from services.fulfillment_service.routers.claims import router as claims_router
from services.fulfillment_service.routers.deliveries import router as deliveries_router
from services.fulfillment_service.routers.orders import router as orders_router

__all__ = [
    "claims_router",
    "deliveries_router",
    "orders_router",
]
