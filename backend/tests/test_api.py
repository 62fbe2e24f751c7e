"""API tests: processing entry point and workflow management endpoints."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from core.exceptions import StoreUnavailableError
from db.models.enrollment import WorkflowEnrollment
from db.models.workflow import Workflow
from services.enrollment_store import EnrollmentStore

BASE = "/api/v1/workflows"


async def _status(db_session, enrollment_id):
    result = await db_session.execute(
        select(WorkflowEnrollment.status).where(WorkflowEnrollment.id == enrollment_id)
    )
    return result.scalar_one_or_none()


# ─── Processing entry point ───

@pytest.mark.integration
class TestProcessWorkflowsEndpoint:
    async def test_idle_returns_204(self, client):
        resp = await client.post("/api/v1/process-workflows")
        assert resp.status_code == 204
        assert resp.content == b""

    async def test_success_returns_200(self, client, credentials, test_workflow, test_contact, enroll):
        enrollment = await enroll(test_workflow, test_contact)

        resp = await client.post("/api/v1/process-workflows")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "success"
        assert (data["processed"], data["sent"], data["failed"], data["skipped"]) == (1, 1, 0, 0)
        assert data["results"] == [{
            "enrollment_id": enrollment.id,
            "contact_id": test_contact.id,
            "outcome": "advanced",
            "detail": "Step 1 sent, advancing to 2",
        }]
        assert "elapsed_ms" in data
        assert "timestamp" in data

    async def test_partial_returns_207(self, client, provider, credentials, test_workflow, make_contact, enroll):
        first = await make_contact()
        second = await make_contact()
        earlier = await enroll(test_workflow, first)
        await enroll(test_workflow, second, next_send_at=earlier.next_send_at + timedelta(seconds=30))
        provider.fail_whatsapp(1)

        resp = await client.post("/api/v1/process-workflows")

        assert resp.status_code == 207
        assert resp.json()["status"] == "partial"

    async def test_all_failed_returns_422(self, client, provider, credentials, test_workflow, test_contact, enroll):
        provider.fail_whatsapp(1)
        await enroll(test_workflow, test_contact)

        resp = await client.post("/api/v1/process-workflows")

        assert resp.status_code == 422
        data = resp.json()
        assert data["status"] == "failed"
        assert data["results"][0]["outcome"] == "retried"
        assert data["results"][0]["detail"] == "Retry 1/3 in 5min: Rate limit hit"

    async def test_store_error_returns_500(self, client, monkeypatch):
        monkeypatch.setattr(
            EnrollmentStore, "fetch_due", AsyncMock(side_effect=StoreUnavailableError("db down")),
        )

        resp = await client.post("/api/v1/process-workflows")

        assert resp.status_code == 500
        assert resp.json()["status"] == "error"
        assert resp.json()["error"] == "db down"


# ─── Workflow management ───

@pytest.mark.integration
class TestWorkflowEndpoints:
    async def test_create_inactive(self, client, test_org, test_list, test_template):
        resp = await client.post(f"{BASE}/", json={
            "organization_id": test_org.id,
            "name": "Welcome",
            "list_id": test_list.id,
            "steps": [
                {"channel": "whatsapp", "template_id": test_template.id},
                {"channel": "email", "delay_days": 1, "send_time": "09:00",
                 "email_subject": "Hi", "email_body": "<p>Hello</p>"},
            ],
        })

        assert resp.status_code == 201
        data = resp.json()
        assert data["workflow"]["is_active"] is False
        assert data["enrollment"] is None
        assert data["message"] == "Workflow created (inactive)"

    async def test_create_active_enrolls(self, client, test_org, test_list, test_template, test_contact):
        resp = await client.post(f"{BASE}/", json={
            "organization_id": test_org.id,
            "name": "Welcome",
            "list_id": test_list.id,
            "is_active": True,
            "steps": [{"channel": "whatsapp", "template_id": test_template.id}],
        })

        assert resp.status_code == 201
        assert resp.json()["enrollment"]["enrolled"] == 1

    async def test_create_with_unapproved_template(self, client, test_org, test_list, make_template):
        template = await make_template(status="pending")
        resp = await client.post(f"{BASE}/", json={
            "organization_id": test_org.id,
            "name": "Welcome",
            "list_id": test_list.id,
            "steps": [{"channel": "whatsapp", "template_id": template.id}],
        })

        assert resp.status_code == 422
        assert "not approved" in resp.json()["detail"]

    async def test_create_requires_steps(self, client, test_org, test_list):
        resp = await client.post(f"{BASE}/", json={
            "organization_id": test_org.id, "name": "W", "list_id": test_list.id, "steps": [],
        })
        assert resp.status_code == 422

    async def test_list(self, client, test_org, test_workflow, test_contact, enroll):
        await enroll(test_workflow, test_contact)

        resp = await client.get(f"{BASE}/", params={"organization_id": test_org.id})

        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        item = data["workflows"][0]
        assert item["name"] == "Onboarding"
        assert item["step_count"] == 2
        assert item["stats"]["active_enrollments"] == 1

    async def test_details(self, client, test_org, test_workflow, test_contact, enroll):
        await enroll(test_workflow, test_contact)

        resp = await client.get(f"{BASE}/{test_workflow.id}", params={"organization_id": test_org.id})

        assert resp.status_code == 200
        data = resp.json()
        assert [s["channel"] for s in data["steps"]] == ["whatsapp", "email"]
        assert data["steps"][0]["template_status"] == "approved"
        assert data["enrollments"][0]["contact_name"] == "Alice Martin"
        assert data["list_name"] == "Leads"

    async def test_details_not_found(self, client, test_org):
        resp = await client.get(f"{BASE}/nope", params={"organization_id": test_org.id})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Workflow not found"

    async def test_deactivate_pauses(self, client, db_session, test_org, test_workflow, test_contact, enroll):
        enrollment = await enroll(test_workflow, test_contact)

        resp = await client.patch(f"{BASE}/{test_workflow.id}", json={
            "organization_id": test_org.id, "is_active": False,
        })

        assert resp.status_code == 200
        data = resp.json()
        assert data["paused"] == 1
        assert data["workflow"]["is_active"] is False
        assert await _status(db_session, enrollment.id) == "paused"

    async def test_deactivation_is_committed(
        self, client, session_factory, test_org, test_workflow, test_contact, enroll,
    ):
        enrollment = await enroll(test_workflow, test_contact)

        resp = await client.patch(f"{BASE}/{test_workflow.id}", json={
            "organization_id": test_org.id, "is_active": False,
        })

        assert resp.status_code == 200
        assert resp.json()["workflow"]["updated_at"] is not None
        async with session_factory() as fresh:
            assert (await fresh.get(Workflow, test_workflow.id)).is_active is False
            assert (await fresh.get(WorkflowEnrollment, enrollment.id)).status == "paused"

    async def test_reactivation_is_committed(
        self, client, session_factory, test_org, test_workflow, test_contact, enroll,
    ):
        enrollment = await enroll(test_workflow, test_contact, status="paused")
        await client.patch(f"{BASE}/{test_workflow.id}", json={"organization_id": test_org.id, "is_active": False})

        resp = await client.patch(f"{BASE}/{test_workflow.id}", json={
            "organization_id": test_org.id, "is_active": True,
        })

        assert resp.status_code == 200
        assert resp.json()["reactivated"] == 1
        async with session_factory() as fresh:
            assert (await fresh.get(Workflow, test_workflow.id)).is_active is True
            assert (await fresh.get(WorkflowEnrollment, enrollment.id)).status == "active"

    async def test_update_without_fields(self, client, test_org, test_workflow):
        resp = await client.patch(f"{BASE}/{test_workflow.id}", json={"organization_id": test_org.id})
        assert resp.status_code == 422
        assert resp.json()["detail"] == "No fields to update"

    async def test_enroll_and_unenroll(self, client, db_session, test_org, test_workflow, test_contact):
        resp = await client.post(f"{BASE}/{test_workflow.id}/enrollments", json={
            "organization_id": test_org.id, "contact_ids": [test_contact.id],
        })
        assert resp.status_code == 200
        assert resp.json() == {"enrolled": 1}

        enrollment_id = (await db_session.execute(
            select(WorkflowEnrollment.id).where(WorkflowEnrollment.workflow_id == test_workflow.id)
        )).scalar_one()

        resp = await client.delete(f"{BASE}/enrollments/{enrollment_id}", params={"organization_id": test_org.id})
        assert resp.status_code == 200
        assert await _status(db_session, enrollment_id) is None

        resp = await client.delete(f"{BASE}/enrollments/{enrollment_id}", params={"organization_id": test_org.id})
        assert resp.status_code == 404

    async def test_sync_list(self, client, test_org, test_list, test_workflow, test_contact):
        resp = await client.post(f"{BASE}/sync-list", json={
            "organization_id": test_org.id, "list_id": test_list.id,
        })

        assert resp.status_code == 200
        assert resp.json()["total_enrolled"] == 1

    async def test_delete(self, client, test_org, test_workflow):
        resp = await client.delete(f"{BASE}/{test_workflow.id}", params={"organization_id": test_org.id})
        assert resp.status_code == 200
        assert resp.json()["message"] == "Workflow deleted"

        resp = await client.get(f"{BASE}/{test_workflow.id}", params={"organization_id": test_org.id})
        assert resp.status_code == 404

    async def test_organization_id_required(self, client):
        resp = await client.get(f"{BASE}/")
        assert resp.status_code == 422
