"""Tests for the REST surface: routing, request validation and error mapping.

The app is built with a pre-wired CaseService over the in-memory store;
httpx.ASGITransport does not run the lifespan, so nothing touches a database.
"""

import uuid
from datetime import timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi import FastAPI

from caseflow.compliance.service import CaseService
from caseflow.core.errors import StoreUnavailable

from tests.conftest import T0


@pytest.fixture
def test_app(service: CaseService) -> FastAPI:
    from caseflow.main import create_app

    return create_app(service=service)


@pytest.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=test_app)  # type: ignore[arg-type]
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def headers(tenant_a: uuid.UUID) -> dict[str, str]:
    return {"X-Tenant-Id": str(tenant_a), "X-Actor-Id": "officer-7"}


async def _create_dsr(client: httpx.AsyncClient, headers: dict[str, str], **body) -> dict:
    payload = {"request_type": "ACCESS", "subject_email": "subject@example.com", **body}
    response = await client.post("/api/v1/dsr", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["dsr"]


class TestHealth:
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["x-request-id"].startswith("req_")

    async def test_ready_with_memory_store(self, client, fake_settings):
        with patch("caseflow.api.health.get_settings", return_value=fake_settings):
            response = await client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["database"] == "not_used"

    async def test_not_ready_is_503(self, client, fake_settings):
        sql_settings = fake_settings.model_copy(update={"store_backend": "sql"})
        with patch("caseflow.api.health.get_settings", return_value=sql_settings), patch(
            "caseflow.api.health.get_engine", side_effect=RuntimeError("Database not initialized")
        ):
            response = await client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


class TestDsrEndpoints:
    async def test_create_and_get(self, client, headers):
        dsr = await _create_dsr(client, headers, priority="HIGH", subject_name="Kiran")

        assert dsr["status"] == "PENDING"
        assert dsr["priority"] == "HIGH"
        assert dsr["sla_deadline"] == (T0 + timedelta(days=3)).isoformat()
        assert dsr["progress"] == 0
        assert dsr["days_remaining"] == 3

        response = await client.get(f"/api/v1/dsr/{dsr['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["subject_name"] == "Kiran"
        assert response.json()["tasks"] == []

    async def test_approve_fans_out(self, client, headers):
        dsr = await _create_dsr(client, headers)

        response = await client.post(f"/api/v1/dsr/{dsr['id']}/approve", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["dsr"]["status"] == "IN_PROGRESS"
        assert [t["data_source_id"] for t in body["dsr"]["tasks"]] == ["billing", "crm"]
        assert [t["new_status"] for t in body["transitions"]] == ["APPROVED", "IN_PROGRESS"]
        assert body["transitions"][0]["actor"] == "officer-7"

    async def test_second_approve_is_conflict(self, client, headers):
        dsr = await _create_dsr(client, headers)
        await client.post(f"/api/v1/dsr/{dsr['id']}/approve", headers=headers)

        response = await client.post(f"/api/v1/dsr/{dsr['id']}/approve", headers=headers)

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"
        assert response.json()["retryable"] is False

    async def test_task_outcome_completes_request(self, client, headers):
        dsr = await _create_dsr(client, headers)
        tasks = (await client.post(f"/api/v1/dsr/{dsr['id']}/approve", headers=headers)).json()["dsr"]["tasks"]

        for task in tasks:
            response = await client.post(
                f"/api/v1/dsr/tasks/{task['id']}/outcome",
                json={"status": "COMPLETED", "result": {"records": 2}},
                headers=headers,
            )
            assert response.status_code == 200

        assert response.json()["dsr"]["status"] == "COMPLETED"
        assert response.json()["dsr"]["progress"] == 100

    async def test_reject_requires_reason(self, client, headers):
        dsr = await _create_dsr(client, headers)

        empty = await client.post(f"/api/v1/dsr/{dsr['id']}/reject", json={"reason": ""}, headers=headers)
        assert empty.status_code == 422
        assert empty.json()["error"] == "validation_error"

        ok = await client.post(
            f"/api/v1/dsr/{dsr['id']}/reject", json={"reason": "duplicate request"}, headers=headers
        )
        assert ok.status_code == 200
        assert ok.json()["dsr"]["status"] == "REJECTED"
        assert ok.json()["dsr"]["reason"] == "duplicate request"

    async def test_invalid_body_is_422(self, client, headers):
        response = await client.post(
            "/api/v1/dsr", json={"request_type": "TELEPORT", "subject_email": "not-an-email"}, headers=headers
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["errors"]

    async def test_missing_tenant_header_is_422(self, client):
        response = await client.get("/api/v1/dsr", headers={"X-Actor-Id": "officer-7"})
        assert response.status_code == 422

    async def test_unknown_and_foreign_ids_are_404(self, client, headers, tenant_b):
        missing = await client.get(f"/api/v1/dsr/{uuid.uuid4()}", headers=headers)
        assert missing.status_code == 404
        assert missing.json()["error"] == "not_found"

        dsr = await _create_dsr(client, headers)
        foreign = {"X-Tenant-Id": str(tenant_b), "X-Actor-Id": "officer-9"}
        response = await client.get(f"/api/v1/dsr/{dsr['id']}", headers=foreign)
        assert response.status_code == 404

    async def test_list_and_overdue(self, client, headers, clock):
        for _ in range(3):
            await _create_dsr(client, headers, priority="HIGH")
            clock.advance(minutes=1)

        page = await client.get("/api/v1/dsr", params={"page_size": 2}, headers=headers)
        assert page.status_code == 200
        assert page.json()["total"] == 3
        assert page.json()["has_next"] is True
        assert len(page.json()["items"]) == 2

        too_big = await client.get("/api/v1/dsr", params={"page_size": 500}, headers=headers)
        assert too_big.status_code == 422

        clock.advance(days=4)
        overdue = await client.get("/api/v1/dsr/overdue", headers=headers)
        assert overdue.status_code == 200
        assert overdue.json()["total"] == 3
        assert all(item["is_overdue"] for item in overdue.json()["items"])

    async def test_store_unavailable_is_503_with_retry_after(self, client, headers, service):
        service.get_dsr = AsyncMock(side_effect=StoreUnavailable("dsr.get timed out"))

        response = await client.get(f"/api/v1/dsr/{uuid.uuid4()}", headers=headers)

        assert response.status_code == 503
        assert response.headers["retry-after"] == "1"
        assert response.json()["retryable"] is True


class TestIncidentEndpoints:
    async def _create(self, client, headers, **body) -> dict:
        payload = {"title": "Laptop stolen", "severity": "HIGH", **body}
        response = await client.post("/api/v1/incidents", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["incident"]

    async def test_create_returns_sla_snapshot(self, client, headers):
        incident = await self._create(
            client,
            headers,
            severity="CRITICAL",
            detected_at=T0.isoformat(),
            pii_categories=["EMAIL"],
            affected_data_subject_count=50,
        )

        assert incident["is_reportable_cert_in"] is True
        assert incident["is_reportable_dpb"] is True
        assert incident["sla"]["cert_in_deadline"] == (T0 + timedelta(hours=6)).isoformat()
        assert incident["sla"]["dpb_deadline"] == (T0 + timedelta(hours=72)).isoformat()

    async def test_naive_detected_at_rejected(self, client, headers):
        response = await client.post(
            "/api/v1/incidents",
            json={"title": "x", "severity": "LOW", "detected_at": "2026-03-01T10:00:00"},
            headers=headers,
        )
        assert response.status_code == 422

    async def test_low_incident_report_is_not_reportable(self, client, headers):
        incident = await self._create(client, headers, severity="LOW")

        response = await client.post(f"/api/v1/incidents/{incident['id']}/reports/cert-in", headers=headers)

        assert response.status_code == 409
        assert response.json()["error"] == "not_reportable"

    async def test_report_then_status_progression(self, client, headers):
        incident = await self._create(client, headers)
        base = f"/api/v1/incidents/{incident['id']}"

        early = await client.patch(base, json={"status": "REPORTED"}, headers=headers)
        assert early.status_code == 409

        report = await client.post(f"{base}/reports/cert-in", headers=headers)
        assert report.status_code == 201
        assert report.json()["report"]["regulator"] == "CERT_IN"
        assert report.json()["report"]["payload"]["title"] == "Laptop stolen"

        reported = await client.patch(base, json={"status": "REPORTED"}, headers=headers)
        assert reported.status_code == 200
        assert reported.json()["incident"]["status"] == "REPORTED"
        assert len(reported.json()["incident"]["reports"]) == 1

        backward = await client.patch(base, json={"status": "OPEN"}, headers=headers)
        assert backward.status_code == 409

    async def test_patch_rejects_derived_fields(self, client, headers):
        incident = await self._create(client, headers)
        response = await client.patch(
            f"/api/v1/incidents/{incident['id']}", json={"is_reportable_cert_in": False}, headers=headers
        )
        assert response.status_code == 422

    async def test_list_filters(self, client, headers):
        await self._create(client, headers, severity="LOW")
        await self._create(client, headers, severity="CRITICAL")

        response = await client.get("/api/v1/incidents", params={"severity": "CRITICAL"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["severity"] == "CRITICAL"
