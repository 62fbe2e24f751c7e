"""WorkflowEnrollment model: one contact's progress through one workflow."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import EnrollmentStatus
from db.base import BaseModel


class WorkflowEnrollment(BaseModel):
    """Execution state of a contact inside a workflow.

    Mutated only by the processing engine and the workflow management
    service. Never deleted by the engine.

    Attributes:
        workflow_id / contact_id / organization_id: Owning references
        current_step: step_order of the next step to send
        status: active, paused, completed, failed
        enrolled_at: When the contact entered the workflow (naive UTC)
        next_send_at: Scheduling key for due-selection (naive UTC)
        completed_at: Set when the last step was sent (naive UTC)
        retry_count: Consecutive failed send attempts for current_step
        last_error: Reason for the latest pause/retry/failure
    """

    __tablename__ = "workflow_enrollments"
    __table_args__ = (
        UniqueConstraint("workflow_id", "contact_id", name="uq_workflow_enrollments_contact"),
        Index("ix_workflow_enrollments_due", "status", "next_send_at"),
    )

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id: Mapped[str] = mapped_column(
        ForeignKey("crm_contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    current_step: Mapped[int] = mapped_column(nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        nullable=False, default=EnrollmentStatus.ACTIVE.value
    )
    enrolled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    next_send_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    retry_count: Mapped[int] = mapped_column(nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
