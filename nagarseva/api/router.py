"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the FastAPI
application only needs to include a single router.

Includes:
    * Health: liveness and readiness checks
    * Complaints: enriched listing, statistics, attention queues, SLA, live stream
    * Mappings: department resolution and mapping-table browsing
    * Address: city/state/pincode extraction
    * Notifications: staff inbox
"""

from __future__ import annotations

from fastapi import APIRouter

from nagarseva.api.v1 import address, complaints, health, mappings, notifications

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health.router)
api_router.include_router(complaints.router)
api_router.include_router(mappings.router)
api_router.include_router(address.router)
api_router.include_router(notifications.router)
