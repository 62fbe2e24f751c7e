"""Workflow and enrollment schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional, Dict, Any


class VariableMappingSchema(BaseModel):
    """Explicit placeholder override."""

    variable: str = Field(min_length=1, description="Placeholder name without braces")
    source: str = Field(default="property", pattern="^(property|manual)$", description="property or manual")
    value: str = Field(default="", description="Contact field name, or literal for manual")


class WorkflowStepCreate(BaseModel):
    """Request to create a workflow step."""

    step_order: Optional[int] = Field(default=None, ge=1, description="1-based position; defaults to list position")
    channel: str = Field(default="whatsapp", description="whatsapp or email")
    delay_days: int = Field(default=0, ge=0, description="Days to wait after the previous step")
    send_time: Optional[str] = Field(default=None, description="Time of day (UTC) as HH:MM")
    template_id: Optional[str] = Field(default=None, description="WhatsApp template ID")
    template_name: Optional[str] = Field(default=None, description="WhatsApp template name")
    email_subject: Optional[str] = Field(default=None, description="Email subject")
    email_body: Optional[str] = Field(default=None, description="Email HTML body")
    variable_mappings: List[VariableMappingSchema] = Field(default=[], description="Placeholder overrides")


class WorkflowCreate(BaseModel):
    """Request to create a workflow."""

    organization_id: str = Field(min_length=1, description="Owning organization")
    name: str = Field(min_length=1, description="Workflow name")
    list_id: str = Field(min_length=1, description="Contact list to enroll")
    steps: List[WorkflowStepCreate] = Field(min_length=1, description="Ordered steps")
    is_active: bool = Field(default=False, description="Activate and enroll immediately")
    created_by: Optional[str] = Field(default=None, description="Creator identifier")


class WorkflowUpdate(BaseModel):
    """Request to update a workflow."""

    organization_id: str = Field(min_length=1, description="Owning organization")
    name: Optional[str] = Field(default=None, min_length=1, description="Workflow name")
    is_active: Optional[bool] = Field(default=None, description="Activation flag")


class EnrollRequest(BaseModel):
    """Request to enroll specific contacts."""

    organization_id: str = Field(min_length=1)
    contact_ids: List[str] = Field(min_length=1, description="Contacts to enroll")


class SyncListRequest(BaseModel):
    """Request to enroll missing list contacts into active workflows."""

    organization_id: str = Field(min_length=1)
    list_id: str = Field(min_length=1)


class WorkflowStepResponse(BaseModel):
    """Workflow step information."""

    id: str
    step_order: int
    channel: str
    delay_days: int
    send_time: Optional[str] = None
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    template_status: Optional[str] = None
    email_subject: Optional[str] = None
    email_body: Optional[str] = None
    variable_mappings: List[Dict[str, Any]] = []


class WorkflowResponse(BaseModel):
    """Workflow information response."""

    id: str = Field(description="Workflow ID")
    organization_id: str = Field(description="Owning organization")
    name: str = Field(description="Workflow name")
    list_id: Optional[str] = Field(default=None, description="Enrolled contact list")
    is_active: bool = Field(description="Whether the workflow is sending")
    created_by: Optional[str] = Field(default=None, description="Creator identifier")
    created_at: Optional[datetime] = Field(default=None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(default=None, description="Last update timestamp")

    class Config:
        from_attributes = True


class WorkflowStats(BaseModel):
    active_enrollments: int = 0
    completed_enrollments: int = 0
    failed_enrollments: int = 0


class WorkflowListItem(WorkflowResponse):
    list_name: Optional[str] = None
    step_count: int = 0
    stats: WorkflowStats


class WorkflowListResponse(BaseModel):
    """List of workflows with enrollment stats."""

    workflows: List[WorkflowListItem] = Field(description="List of workflows")
    total: int = Field(description="Total number of workflows")


class EnrollmentResponse(BaseModel):
    """Enrollment state of one contact."""

    id: str
    workflow_id: str
    contact_id: str
    contact_name: Optional[str] = None
    current_step: int
    status: str
    enrolled_at: Optional[datetime] = None
    next_send_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    last_error: Optional[str] = None


class WorkflowDetailResponse(WorkflowResponse):
    """Workflow with steps and latest enrollments."""

    list_name: Optional[str] = None
    steps: List[WorkflowStepResponse] = []
    enrollments: List[EnrollmentResponse] = []


class EnrollmentReportResponse(BaseModel):
    enrolled: int = 0
    skipped: int = 0
    total_in_list: int = 0
    errors: List[str] = []


class WorkflowMutationResponse(BaseModel):
    """Result of creating or updating a workflow."""

    workflow: WorkflowResponse
    enrollment: Optional[EnrollmentReportResponse] = None
    reactivated: int = 0
    paused: int = 0
    message: str = ""
