"""Department mapping endpoints: resolve, batch resolve and table browsing."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from nagarseva.models.mapping import DepartmentMapping, DepartmentMappingResult
from nagarseva.services.department_mapping import DepartmentMappingResolver

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/mappings", tags=["department-mapping"])

# Batch requests larger than this are rejected outright.
_MAX_BATCH = 500


class ResolveRequest(BaseModel):
    category: str | None = None
    city: str | None = None
    complaint_id: str | None = None


class BatchResolveRequest(BaseModel):
    items: list[ResolveRequest] = Field(..., max_length=_MAX_BATCH)


def _resolver(request: Request, deployment: str) -> DepartmentMappingResolver:
    attr = "citizen_resolver" if deployment == "citizen" else "mapping_resolver"
    resolver = getattr(request.app.state, attr, None)
    if resolver is None:
        raise HTTPException(status_code=503, detail="Department mapping not available")
    return resolver


@router.post("/resolve", response_model=DepartmentMappingResult)
async def resolve_mapping(
    body: ResolveRequest,
    request: Request,
    deployment: str = Query("operations", pattern="^(operations|citizen)$"),
) -> DepartmentMappingResult:
    """Resolve one (category, city) pair.  Always answers, falling back to the
    default department."""
    return await _resolver(request, deployment).resolve(body.model_dump())


@router.post("/resolve/batch", response_model=dict[str, DepartmentMappingResult])
async def resolve_batch(
    body: BatchResolveRequest,
    request: Request,
    deployment: str = Query("operations", pattern="^(operations|citizen)$"),
) -> dict[str, DepartmentMappingResult]:
    resolver = _resolver(request, deployment)
    return await resolver.resolve_many(item.model_dump() for item in body.items)


@router.get("/cities/{city}", response_model=list[DepartmentMapping])
async def departments_by_city(
    city: str,
    request: Request,
    limit: int = Query(50, ge=1, le=500),
) -> list[DepartmentMapping]:
    return await _resolver(request, "operations").departments_by_city(city, limit=limit)


@router.get("/categories", response_model=list[str])
async def available_categories(request: Request) -> list[str]:
    return await _resolver(request, "operations").available_categories()


@router.get("/cities", response_model=list[str])
async def available_cities(request: Request) -> list[str]:
    return await _resolver(request, "operations").available_cities()
