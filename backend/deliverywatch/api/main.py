"""
FastAPI application entry point.

API server exposing delivery spike counts and per-symbol spike detail.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from deliverywatch.core.config import settings
from deliverywatch.core.logging import setup_logging
from deliverywatch.core.database import close_db
from deliverywatch.core.redis import close_redis

# Setup logging
setup_logging()

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Delivery percentage spike tracking for exchange-listed equities",
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("shutdown")
async def shutdown() -> None:
    """Run on application shutdown."""
    await close_db()
    await close_redis()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


from deliverywatch.api.delivery_spikes import router as delivery_spikes_router
from deliverywatch.api.metrics import router as metrics_router

app.include_router(delivery_spikes_router, prefix="/api/v1/delivery-spikes", tags=["delivery-spikes"])
app.include_router(metrics_router, prefix="/api/v1/metrics", tags=["metrics"])
