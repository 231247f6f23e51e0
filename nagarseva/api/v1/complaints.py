"""Enriched complaint endpoints: listing, statistics, attention queues,
SLA status and a live WebSocket stream."""

from __future__ import annotations

import asyncio
from datetime import datetime

import orjson
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from nagarseva.errors import StoreError
from nagarseva.models.enriched import (
    AttentionQueues,
    ComplaintFilters,
    ComplaintStatistics,
    EnrichedComplaint,
    Pagination,
    SLAEvaluation,
)
from nagarseva.models.enums import ProcessingStatus, normalize_priority
from nagarseva.services.orchestrator import EnrichedComplaintService
from nagarseva.services.sla import evaluate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _service(state: object) -> EnrichedComplaintService:
    service = getattr(state, "complaint_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Complaint service not available")
    return service


def get_complaint_service(request: Request) -> EnrichedComplaintService:
    return _service(request.app.state)


def get_filters(
    category: str | None = None,
    city: str | None = None,
    status: str | None = None,
    department: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    assigned_department: str | None = None,
    processing_status: ProcessingStatus | None = None,
    priority: str | None = None,
    is_default_mapping: bool | None = None,
) -> ComplaintFilters:
    parsed_priority = None
    if priority:
        parsed_priority = normalize_priority(priority)
        if parsed_priority is None:
            raise HTTPException(status_code=422, detail=f"Unknown priority: {priority}")
    return ComplaintFilters(
        category=category,
        city=city,
        status=status,
        department=department,
        date_from=date_from,
        date_to=date_to,
        assigned_department=assigned_department,
        processing_status=processing_status,
        priority=parsed_priority,
        is_default_mapping=is_default_mapping,
    )


def get_pagination(
    limit: int = Query(50, ge=1, le=1000),
    order_by: str = "createdAt",
    descending: bool = True,
) -> Pagination:
    return Pagination(limit=limit, order_by=order_by, descending=descending)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=list[EnrichedComplaint])
async def list_complaints(
    filters: ComplaintFilters = Depends(get_filters),
    pagination: Pagination = Depends(get_pagination),
    service: EnrichedComplaintService = Depends(get_complaint_service),
) -> list[EnrichedComplaint]:
    try:
        return await service.fetch_enriched(filters, pagination)
    except StoreError:
        logger.error("api.complaints.store_unavailable", exc_info=True)
        raise HTTPException(status_code=503, detail="Complaint store unavailable") from None


@router.get("/statistics", response_model=ComplaintStatistics)
async def complaint_statistics(
    filters: ComplaintFilters = Depends(get_filters),
    service: EnrichedComplaintService = Depends(get_complaint_service),
) -> ComplaintStatistics:
    try:
        return await service.get_statistics(filters)
    except StoreError:
        logger.error("api.complaints.statistics_failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Complaint store unavailable") from None


@router.get("/attention", response_model=AttentionQueues)
async def attention_queues(
    service: EnrichedComplaintService = Depends(get_complaint_service),
) -> AttentionQueues:
    """Complaints staff should look at first."""
    try:
        return await service.get_attention_queues()
    except StoreError:
        logger.error("api.complaints.attention_failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Complaint store unavailable") from None


@router.get("/sla", response_model=list[SLAEvaluation])
async def sla_status(
    filters: ComplaintFilters = Depends(get_filters),
    pagination: Pagination = Depends(get_pagination),
    service: EnrichedComplaintService = Depends(get_complaint_service),
) -> list[SLAEvaluation]:
    try:
        complaints = await service.fetch_enriched(filters, pagination)
    except StoreError:
        logger.error("api.complaints.sla_failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Complaint store unavailable") from None
    return evaluate(complaints, policy=service.enricher.policy)


@router.websocket("/stream")
async def complaint_stream(websocket: WebSocket) -> None:
    """Push a JSON array of enriched complaints on every change.

    Query parameters mirror ``GET /complaints``.  The subscription is
    released when the client disconnects.
    """
    service = getattr(websocket.app.state, "complaint_service", None)
    if service is None:
        await websocket.close(code=1013)
        return

    params = websocket.query_params
    try:
        filters = get_filters(
            category=params.get("category"),
            city=params.get("city"),
            status=params.get("status"),
            department=params.get("department"),
            assigned_department=params.get("assigned_department"),
            priority=params.get("priority"),
        )
        pagination = Pagination(limit=int(params.get("limit", 50)))
    except (HTTPException, ValueError):
        await websocket.close(code=1008)
        return

    await websocket.accept()
    outbox: asyncio.Queue[list[EnrichedComplaint]] = asyncio.Queue()

    async def on_snapshot(complaints: list[EnrichedComplaint]) -> None:
        await outbox.put(complaints)

    subscription = service.subscribe_enriched(filters, on_snapshot, pagination)
    logger.info("api.complaints.stream_opened", client=str(websocket.client))

    async def pump() -> None:
        try:
            while True:
                complaints = await outbox.get()
                payload = orjson.dumps([c.model_dump(mode="json") for c in complaints])
                await websocket.send_text(payload.decode())
        except Exception:
            logger.warning("api.complaints.stream_send_failed", exc_info=True)

    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        subscription()
        sender.cancel()
        logger.info("api.complaints.stream_closed", client=str(websocket.client))
