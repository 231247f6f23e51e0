"""NagarSeva FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the complaint pipeline (document stores, mapping
cache, department resolvers, enricher, read service, notification sink,
SLA monitor and complaint processor).
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.policy import DEFAULT_POLICY
from config.settings import Settings, settings
from nagarseva.api.router import api_router
from nagarseva.models.enriched import ComplaintFilters, EnrichedComplaint, Pagination
from nagarseva.services.cache import MappingCache
from nagarseva.services.department_mapping import DepartmentMappingResolver
from nagarseva.services.enrichment import ComplaintEnricher
from nagarseva.services.notifications import (
    InMemoryNotificationSink,
    NotificationSink,
    StoreNotificationSink,
)
from nagarseva.services.orchestrator import EnrichedComplaintService
from nagarseva.services.processor import ComplaintProcessor
from nagarseva.services.sla import SLAMonitor
from nagarseva.store.base import DocumentStore
from nagarseva.store.memory import InMemoryDocumentStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _build_stores(config: Settings) -> tuple[DocumentStore, DocumentStore]:
    """Return ``(operations_store, citizen_store)``.

    The in-memory backend uses one store for both sides so that complaints
    and mappings written during development are visible to each other.
    """
    if config.store_backend == "firestore":
        from nagarseva.store.firestore import FirestoreDocumentStore

        project = config.gcp_project_id or None
        operations = FirestoreDocumentStore(project=project, database=config.operations_firestore_database)
        if config.citizen_firestore_database == config.operations_firestore_database:
            return operations, operations
        citizen = FirestoreDocumentStore(project=project, database=config.citizen_firestore_database)
        return operations, citizen

    store = InMemoryDocumentStore()
    return store, store


def _build_sink(config: Settings, operations: DocumentStore) -> NotificationSink:
    if config.notification_sink == "store":
        return StoreNotificationSink(operations, collection=config.notifications_collection)
    return InMemoryNotificationSink()


async def _close_store(store: DocumentStore) -> None:
    close = getattr(store, "close", None)
    if close is None:
        return
    try:
        await close()
    except Exception:
        logger.warning("app.store_close_failed", exc_info=True)


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the complaint pipeline.

    On startup:
      1. Open the operations and citizen document stores
      2. Initialise the mapping cache (Redis with in-memory fallback)
      3. Build the operations and citizen department resolvers
      4. Build the enricher and the enriched complaint service
      5. Choose the notification sink
      6. Start the SLA monitor and, if enabled, the complaint processor
      7. Store everything on ``app.state``

    On shutdown:
      - Stop background workers, close the cache and the stores.
    """
    _configure_logging()
    logger.info(
        "app.startup",
        env=settings.env,
        store_backend=settings.store_backend,
        gcp_project=settings.gcp_project_id,
    )

    app.state.start_time = time.time()

    # -- 1. Stores ------------------------------------------------------------
    operations_store, citizen_store = _build_stores(settings)
    app.state.operations_store = operations_store
    app.state.complaint_store = citizen_store
    app.state.complaints_collection = settings.complaints_collection
    logger.info("app.stores_initialised", backend=settings.store_backend)

    # -- 2. Mapping cache -----------------------------------------------------
    mapping_cache = MappingCache(
        redis_url=settings.redis_url if settings.redis_url else None,
        ttl_seconds=settings.mapping_cache_ttl,
        namespace="nagarseva:",
    )
    app.state.mapping_cache = mapping_cache

    # -- 3. Resolvers ---------------------------------------------------------
    resolver_options = {
        "collection": settings.mappings_collection,
        "policy": DEFAULT_POLICY,
        "timeout_seconds": settings.mapping_lookup_timeout_seconds,
        "attempts": settings.mapping_lookup_attempts,
    }
    resolver = DepartmentMappingResolver(
        operations_store,
        cache=mapping_cache,
        name="operations",
        **resolver_options,
    )
    citizen_resolver = DepartmentMappingResolver(
        citizen_store,
        cache=MappingCache(
            redis_url=settings.redis_url if settings.redis_url else None,
            ttl_seconds=settings.mapping_cache_ttl,
            namespace="nagarseva:citizen:",
        ),
        name="citizen",
        **resolver_options,
    )
    app.state.mapping_resolver = resolver
    app.state.citizen_resolver = citizen_resolver
    logger.info("app.resolvers_initialised")

    # -- 4. Enrichment and read service ---------------------------------------
    enricher = ComplaintEnricher(resolver)
    complaint_service = EnrichedComplaintService(
        citizen_store,
        enricher,
        collection=settings.complaints_collection,
        statistics_limit=settings.statistics_fetch_limit,
        attention_limit=settings.attention_fetch_limit,
        long_pending_days=settings.long_pending_days,
        query_timeout_seconds=settings.complaint_query_timeout_seconds,
        query_attempts=settings.complaint_query_attempts,
    )
    app.state.enricher = enricher
    app.state.complaint_service = complaint_service

    # -- 5. Notifications -----------------------------------------------------
    sink = _build_sink(settings, operations_store)
    app.state.notification_sink = sink
    logger.info("app.notification_sink_initialised", sink=settings.notification_sink)

    # -- 6. Background workers ------------------------------------------------
    sla_monitor: SLAMonitor | None = None
    if settings.enable_sla_monitor:

        async def load_open_complaints() -> list[EnrichedComplaint]:
            return await complaint_service.fetch_enriched(
                ComplaintFilters(),
                Pagination(limit=settings.statistics_fetch_limit),
            )

        sla_monitor = SLAMonitor(
            sink,
            loader=load_open_complaints,
            interval_seconds=settings.sla_check_interval_seconds,
            policy=enricher.policy,
        )
        sla_monitor.start()
    app.state.sla_monitor = sla_monitor

    processor: ComplaintProcessor | None = None
    if settings.enable_complaint_processor:
        processor = ComplaintProcessor(
            citizen_store,
            operations_store,
            enricher,
            sink,
            complaints_collection=settings.complaints_collection,
            processed_collection=settings.processed_collection,
        )
        processor.start()
    app.state.processor = processor

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -------------------------------------------------------------
    logger.info("app.shutdown_start")

    if processor is not None:
        processor.stop()
    if sla_monitor is not None:
        await sla_monitor.stop()

    await mapping_cache.close()
    await _close_store(operations_store)
    if citizen_store is not operations_store:
        await _close_store(citizen_store)

    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="NagarSeva API",
    description=(
        "NagarSeva -- civic complaint routing for Indian municipalities. "
        "Maps citizen complaints to the responsible department, tracks "
        "priority and SLA deadlines, and surfaces complaints needing attention."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "NagarSeva API",
        "version": app.version,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "complaints": "/api/v1/complaints",
            "statistics": "/api/v1/complaints/statistics",
            "attention": "/api/v1/complaints/attention",
            "sla": "/api/v1/complaints/sla",
            "stream": "/api/v1/complaints/stream",
            "mappings": "/api/v1/mappings",
            "address": "/api/v1/address/parse",
            "notifications": "/api/v1/notifications",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nagarseva.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=not settings.is_production,
    )
