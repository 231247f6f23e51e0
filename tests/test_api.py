"""Tests for the v1 HTTP and WebSocket API."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import orjson
import pytest
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from config.policy import DEFAULT_POLICY
from nagarseva.api.router import api_router
from nagarseva.models.enriched import EnrichedComplaint
from nagarseva.services.department_mapping import DepartmentMappingResolver
from nagarseva.services.enrichment import ComplaintEnricher
from nagarseva.services.notifications import InMemoryNotificationSink, new_complaint_notification
from nagarseva.services.orchestrator import EnrichedComplaintService
from nagarseva.store.memory import InMemoryDocumentStore

from tests.factories import complaint_document, make_enriched, seed_mappings


async def _seed(store: InMemoryDocumentStore) -> None:
    now = datetime.now(UTC)
    await seed_mappings(store)
    await store.set(
        "complaints",
        "a1",
        complaint_document("Water Leakage", "Mumbai", created_at=now - timedelta(hours=1), status="Open"),
    )
    await store.set(
        "complaints",
        "a2",
        complaint_document("Pothole", "Delhi", created_at=now - timedelta(hours=2), status="In Progress"),
    )
    await store.set(
        "complaints",
        "a3",
        complaint_document("Stray Animals", "Pune", created_at=now - timedelta(days=10), status="Open"),
    )


def _build_app(store: InMemoryDocumentStore | None) -> FastAPI:
    app = FastAPI(version="0.1.0", default_response_class=ORJSONResponse)
    app.include_router(api_router)
    app.state.start_time = 0.0
    if store is None:
        return app

    resolver = DepartmentMappingResolver(store, policy=DEFAULT_POLICY, timeout_seconds=1.0, attempts=1)
    enricher = ComplaintEnricher(resolver)
    app.state.complaint_store = store
    app.state.complaints_collection = "complaints"
    app.state.mapping_resolver = resolver
    app.state.citizen_resolver = resolver
    app.state.enricher = enricher
    app.state.complaint_service = EnrichedComplaintService(store, enricher)
    app.state.notification_sink = InMemoryNotificationSink()
    return app


@pytest.fixture
def app() -> FastAPI:
    store = InMemoryDocumentStore()
    asyncio.run(_seed(store))
    return _build_app(store)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def bare_client() -> TestClient:
    """Client for an app whose pipeline never started."""
    return TestClient(_build_app(None))


# -----------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------


class TestHealth:
    def test_liveness(self, client) -> None:
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness(self, client) -> None:
        data = client.get("/api/v1/health/ready").json()
        assert data["status"] == "ready"
        assert data["checks"]["complaint_store"] == "ok"
        assert data["checks"]["sla_monitor"] == "disabled"

    def test_readiness_degraded_without_store(self, bare_client) -> None:
        data = bare_client.get("/api/v1/health/ready").json()
        assert data["status"] == "degraded"
        assert data["checks"]["complaint_store"] == "not_configured"


# -----------------------------------------------------------------------
# Complaints
# -----------------------------------------------------------------------


class TestComplaints:
    def test_list_is_newest_first_and_enriched(self, client) -> None:
        response = client.get("/api/v1/complaints")
        assert response.status_code == 200
        data = response.json()
        assert [c["complaint_id"] for c in data] == ["a1", "a2", "a3"]
        assert data[0]["department"] == "Water Supply Department"
        assert data[0]["priority"] == "high"
        assert data[2]["is_default_mapping"] is True

    def test_store_and_enriched_filters(self, client) -> None:
        by_city = client.get("/api/v1/complaints", params={"city": "Delhi"}).json()
        assert [c["complaint_id"] for c in by_city] == ["a2"]

        by_priority = client.get("/api/v1/complaints", params={"priority": "HIGH"}).json()
        assert [c["complaint_id"] for c in by_priority] == ["a1"], "priority filter is case-insensitive"

        defaults = client.get("/api/v1/complaints", params={"is_default_mapping": "true"}).json()
        assert [c["complaint_id"] for c in defaults] == ["a3"]

    def test_unknown_priority_is_rejected(self, client) -> None:
        response = client.get("/api/v1/complaints", params={"priority": "whenever"})
        assert response.status_code == 422

    def test_limit(self, client) -> None:
        assert len(client.get("/api/v1/complaints", params={"limit": 1}).json()) == 1

    def test_statistics(self, client) -> None:
        data = client.get("/api/v1/complaints/statistics").json()
        assert data["total"] == 3
        assert data["by_city"] == {"Mumbai": 1, "Delhi": 1, "Pune": 1}
        assert data["by_status"] == {"Open": 2, "In Progress": 1}
        assert data["default_mapping_count"] == 1
        assert data["breach_count"] == 1
        assert data["warning_count"] == 1, "urgent department deadline falls inside the warning window"

    def test_attention_queues(self, client) -> None:
        data = client.get("/api/v1/complaints/attention").json()
        assert [c["complaint_id"] for c in data["sla_breaches"]] == ["a3"]
        assert [c["complaint_id"] for c in data["default_mappings"]] == ["a3"]
        assert [c["complaint_id"] for c in data["long_pending"]] == ["a3"]
        assert data["high_priority_pending"] == []

    def test_sla_status(self, client) -> None:
        data = client.get("/api/v1/complaints/sla").json()
        by_id = {row["complaint_id"]: row for row in data}
        assert by_id["a1"]["status"] == "warning"
        assert by_id["a2"]["status"] == "ok"
        assert by_id["a3"]["status"] == "breached"
        assert by_id["a3"]["hours_left"] == 0

    def test_service_unavailable(self, bare_client) -> None:
        assert bare_client.get("/api/v1/complaints").status_code == 503
        assert bare_client.get("/api/v1/complaints/statistics").status_code == 503


class TestComplaintStream:
    def test_stream_sends_enriched_snapshot(self, client) -> None:
        with client.websocket_connect("/api/v1/complaints/stream?city=Mumbai") as ws:
            payload = orjson.loads(ws.receive_text())
        assert [c["complaint_id"] for c in payload] == ["a1"]
        assert payload[0]["department"] == "Water Supply Department"

    def test_stream_rejects_bad_params(self, client) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/v1/complaints/stream?priority=whenever") as ws:
                ws.receive_text()
        assert exc_info.value.code == 1008

    def test_stream_without_service(self, bare_client) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with bare_client.websocket_connect("/api/v1/complaints/stream") as ws:
                ws.receive_text()
        assert exc_info.value.code == 1013


# -----------------------------------------------------------------------
# Mappings and address
# -----------------------------------------------------------------------


class TestMappings:
    def test_resolve(self, client) -> None:
        response = client.post("/api/v1/mappings/resolve", json={"category": "Pothole", "city": "Delhi"})
        assert response.status_code == 200
        data = response.json()
        assert data["department"] == "Public Works Department (PWD)"
        assert data["is_default"] is False

    def test_resolve_unknown_pair_returns_default(self, client) -> None:
        data = client.post("/api/v1/mappings/resolve", json={"category": "Stray Animals", "city": "Pune"}).json()
        assert data["is_default"] is True
        assert data["department"] == DEFAULT_POLICY.default_department

    def test_resolve_citizen_deployment(self, client) -> None:
        response = client.post(
            "/api/v1/mappings/resolve",
            params={"deployment": "citizen"},
            json={"category": "Water Leakage", "city": "Mumbai"},
        )
        assert response.json()["department"] == "Water Supply Department"

    def test_resolve_rejects_unknown_deployment(self, client) -> None:
        response = client.post(
            "/api/v1/mappings/resolve",
            params={"deployment": "staging"},
            json={"category": "Pothole", "city": "Delhi"},
        )
        assert response.status_code == 422

    def test_batch_resolve(self, client) -> None:
        response = client.post(
            "/api/v1/mappings/resolve/batch",
            json={
                "items": [
                    {"complaint_id": "x1", "category": "Pothole", "city": "Delhi"},
                    {"complaint_id": "x2", "category": "Unknown", "city": "Nowhere"},
                ]
            },
        )
        data = response.json()
        assert data["x1"]["department"] == "Public Works Department (PWD)"
        assert data["x2"]["is_default"] is True

    def test_table_browsing(self, client) -> None:
        assert client.get("/api/v1/mappings/categories").json() == [
            "Garbage Collection",
            "Pothole",
            "Streetlight",
            "Water Leakage",
        ]
        assert client.get("/api/v1/mappings/cities").json() == ["Bangalore", "Delhi", "Mumbai"]
        mumbai = client.get("/api/v1/mappings/cities/Mumbai").json()
        assert {row["department"] for row in mumbai} == {"Water Supply Department", "Electricity Department"}

    def test_unavailable_resolver(self, bare_client) -> None:
        response = bare_client.post("/api/v1/mappings/resolve", json={"category": "Pothole", "city": "Delhi"})
        assert response.status_code == 503


class TestAddress:
    def test_parse(self, client) -> None:
        data = client.post(
            "/api/v1/address/parse",
            json={"address": "123 MG Road, Bombay, Maharashtra 400001"},
        ).json()
        assert data == {
            "city": "Mumbai",
            "state": "Maharashtra",
            "pincode": "400001",
            "full_address": "123 MG Road, Bombay, Maharashtra 400001",
            "is_known_city": True,
        }


# -----------------------------------------------------------------------
# Notifications
# -----------------------------------------------------------------------


class TestNotifications:
    def _publish(self, app: FastAPI, complaint: EnrichedComplaint) -> str:
        notice = new_complaint_notification(complaint)
        asyncio.run(app.state.notification_sink.publish(notice))
        return notice.notification_id

    def test_inbox_and_mark_read(self, app, client) -> None:
        first = self._publish(app, make_enriched(complaint_id="n1"))
        self._publish(app, make_enriched(complaint_id="n2"))

        inbox = client.get("/api/v1/notifications").json()
        assert inbox["unread_count"] == 2
        assert [n["complaint_id"] for n in inbox["notifications"]] == ["n2", "n1"], "newest first"

        assert client.post(f"/api/v1/notifications/{first}/read").status_code == 200
        unread = client.get("/api/v1/notifications", params={"unread_only": "true"}).json()
        assert [n["complaint_id"] for n in unread["notifications"]] == ["n2"]

        assert client.post("/api/v1/notifications/read-all").json() == {"unread_count": 0}

    def test_filter_by_type(self, app, client) -> None:
        self._publish(app, make_enriched(complaint_id="n1"))
        data = client.get("/api/v1/notifications", params={"type": "sla_breach"}).json()
        assert data["notifications"] == []

    def test_unknown_notification(self, client) -> None:
        assert client.post("/api/v1/notifications/missing/read").status_code == 404

    def test_inbox_disabled(self, bare_client) -> None:
        assert bare_client.get("/api/v1/notifications").status_code == 404


# -----------------------------------------------------------------------
# Application lifespan
# -----------------------------------------------------------------------


class TestApplication:
    def test_lifespan_wires_pipeline(self) -> None:
        from nagarseva.main import app

        with TestClient(app) as client:
            assert client.get("/api/v1/health").status_code == 200
            ready = client.get("/api/v1/health/ready").json()
            assert ready["checks"]["complaint_store"] == "ok"
            assert ready["checks"]["sla_monitor"] == "running"
            assert client.get("/api/v1/complaints").json() == []
            assert "endpoints" in client.get("/api").json()
