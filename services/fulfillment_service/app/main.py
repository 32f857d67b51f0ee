"""FastAPI application for the Fulfillment Service."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.fulfillment_service.errors import FulfillmentError
from services.fulfillment_service.routers import (
    claims_router,
    deliveries_router,
    orders_router,
)
from slowapi.errors import RateLimitExceeded

logger = get_logger(__name__)


async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
    logger.warning(
        "%s %s rejected: %s (%s)",
        request.method,
        request.url.path,
        exc.code,
        exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app() -> FastAPI:
    """Create and configure the Fulfillment Service FastAPI app."""
    app = FastAPI(
        title="FoodShare Fulfillment Service",
        version="0.1.0",
        description="Order, donation claim and delivery lifecycle for FoodShare.",
    )
    add_observability_middleware(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(FulfillmentError, fulfillment_error_handler)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "fulfillment"}

    app.include_router(orders_router)
    app.include_router(claims_router)
    app.include_router(deliveries_router)

    return app


app = create_app()
