"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import parcels, deliveries

router = APIRouter()

# Parcel lifecycle and tracking history
router.include_router(parcels.router)

# Delivery assignment, execution and location trail
router.include_router(deliveries.router)
