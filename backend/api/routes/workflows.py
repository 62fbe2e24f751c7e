"""Workflow endpoints: create, list, details, update, delete, enroll, unenroll, sync-list."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from api.schemas.common import MessageResponse
from api.schemas.workflow import (
    EnrollmentReportResponse,
    EnrollmentResponse,
    EnrollRequest,
    SyncListRequest,
    WorkflowCreate,
    WorkflowDetailResponse,
    WorkflowListItem,
    WorkflowListResponse,
    WorkflowMutationResponse,
    WorkflowResponse,
    WorkflowStats,
    WorkflowStepResponse,
    WorkflowUpdate,
)
from app.dependencies import get_db
from services.workflow_service import EnrollmentReport, WorkflowService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflows"])


def _workflow_to_response(wf) -> WorkflowResponse:
    """Convert a Workflow ORM object to response schema."""
    return WorkflowResponse(
        id=wf.id,
        organization_id=wf.organization_id,
        name=wf.name,
        list_id=wf.list_id,
        is_active=wf.is_active,
        created_by=wf.created_by,
        created_at=wf.created_at,
        updated_at=wf.updated_at,
    )


def _report_to_response(report: EnrollmentReport) -> EnrollmentReportResponse:
    return EnrollmentReportResponse(**report.to_dict())


@router.post("/", response_model=WorkflowMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreate,
    db: AsyncSession = Depends(get_db),
) -> WorkflowMutationResponse:
    """
    Create a workflow with its steps. Optionally activate and enroll its list.
    """
    svc = WorkflowService(db)
    wf, report = await svc.create_workflow(
        organization_id=request.organization_id,
        name=request.name,
        list_id=request.list_id,
        steps=[step.model_dump() for step in request.steps],
        is_active=request.is_active,
        created_by=request.created_by,
    )
    if report is not None:
        message = f"Workflow created - {report.enrolled} contacts enrolled"
    else:
        message = "Workflow created (inactive)"
    return WorkflowMutationResponse(
        workflow=_workflow_to_response(wf),
        enrollment=_report_to_response(report) if report is not None else None,
        message=message,
    )


@router.get("/", response_model=WorkflowListResponse)
async def list_workflows(
    organization_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> WorkflowListResponse:
    """
    List the organization's workflows with enrollment stats.
    """
    svc = WorkflowService(db)
    summaries = await svc.list_workflows(organization_id)
    items = [
        WorkflowListItem(
            **_workflow_to_response(s.workflow).model_dump(),
            list_name=s.list_name,
            step_count=s.step_count,
            stats=WorkflowStats(**s.stats),
        )
        for s in summaries
    ]
    return WorkflowListResponse(workflows=items, total=len(items))


@router.post("/sync-list", response_model=dict)
async def sync_list(
    request: SyncListRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Enroll contacts newly added to a list into every active workflow using it.
    """
    svc = WorkflowService(db)
    return await svc.sync_list(request.list_id, request.organization_id)


@router.delete("/enrollments/{enrollment_id}", response_model=MessageResponse)
async def unenroll(
    enrollment_id: str,
    organization_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Remove a contact from a workflow.
    """
    svc = WorkflowService(db)
    await svc.unenroll(enrollment_id, organization_id)
    return MessageResponse(message="Contact removed from workflow")


@router.get("/{workflow_id}", response_model=WorkflowDetailResponse)
async def get_workflow(
    workflow_id: str,
    organization_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> WorkflowDetailResponse:
    """
    Get workflow details: steps and the latest enrollments.
    """
    svc = WorkflowService(db)
    details = await svc.get_workflow_details(workflow_id, organization_id)

    steps = [
        WorkflowStepResponse(
            id=step.id,
            step_order=step.step_order,
            channel=step.channel,
            delay_days=step.delay_days,
            send_time=step.send_time,
            template_id=step.template_id,
            template_name=step.template_name,
            template_status=template.status if template is not None else None,
            email_subject=step.email_subject,
            email_body=step.email_body,
            variable_mappings=step.variable_mappings or [],
        )
        for step, template in details.steps
    ]
    enrollments = [
        EnrollmentResponse(
            id=e.id,
            workflow_id=e.workflow_id,
            contact_id=e.contact_id,
            contact_name=contact.name if contact is not None else None,
            current_step=e.current_step,
            status=e.status,
            enrolled_at=e.enrolled_at,
            next_send_at=e.next_send_at,
            completed_at=e.completed_at,
            retry_count=e.retry_count,
            last_error=e.last_error,
        )
        for e, contact in details.enrollments
    ]
    return WorkflowDetailResponse(
        **_workflow_to_response(details.workflow).model_dump(),
        list_name=details.contact_list.name if details.contact_list is not None else None,
        steps=steps,
        enrollments=enrollments,
    )


@router.patch("/{workflow_id}", response_model=WorkflowMutationResponse)
async def update_workflow(
    workflow_id: str,
    request: WorkflowUpdate,
    db: AsyncSession = Depends(get_db),
) -> WorkflowMutationResponse:
    """
    Rename a workflow or toggle its activation.

    Deactivating pauses in-flight enrollments; activating resumes them
    and enrolls new list contacts.
    """
    svc = WorkflowService(db)
    result = await svc.update_workflow(
        workflow_id,
        request.organization_id,
        name=request.name,
        is_active=request.is_active,
    )

    if result.enrollment is not None:
        message = (
            f"Workflow activated. {result.reactivated} reactivated, "
            f"{result.enrollment.enrolled} newly enrolled."
        )
    elif result.paused:
        message = f"Workflow deactivated. {result.paused} enrollments paused."
    else:
        message = "Workflow updated"

    return WorkflowMutationResponse(
        workflow=_workflow_to_response(result.workflow),
        enrollment=_report_to_response(result.enrollment) if result.enrollment is not None else None,
        reactivated=result.reactivated,
        paused=result.paused,
        message=message,
    )


@router.delete("/{workflow_id}", response_model=MessageResponse)
async def delete_workflow(
    workflow_id: str,
    organization_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Delete a workflow with its steps and enrollments.
    """
    svc = WorkflowService(db)
    await svc.delete_workflow(workflow_id, organization_id)
    return MessageResponse(message="Workflow deleted")


@router.post("/{workflow_id}/enrollments", response_model=dict)
async def enroll_contacts(
    workflow_id: str,
    request: EnrollRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Enroll specific contacts; already enrolled contacts are ignored.
    """
    svc = WorkflowService(db)
    enrolled = await svc.enroll_contacts(workflow_id, request.organization_id, request.contact_ids)
    return {"enrolled": enrolled}
