"""WorkflowStep model for the outreach sequencer."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import Channel
from db.base import BaseModel


class WorkflowStep(BaseModel):
    """A single scheduled message send within a workflow.

    Attributes:
        id: Unique identifier (UUID string)
        workflow_id: Foreign key to Workflow
        step_order: Dense 1-based position in the workflow
        delay_days: Days to wait after the previous step
        send_time: Optional "HH:MM" time of day (UTC)
        channel: 'whatsapp' or 'email'
        template_id / template_name: WhatsApp template reference
        email_subject / email_body: Email content
        variable_mappings: Explicit {variable, source, value} overrides
    """

    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "step_order", name="uq_workflow_steps_order"),
    )

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_order: Mapped[int] = mapped_column(nullable=False)
    delay_days: Mapped[int] = mapped_column(nullable=False, default=0)
    send_time: Mapped[Optional[str]] = mapped_column(nullable=True)
    channel: Mapped[str] = mapped_column(
        nullable=False, default=Channel.WHATSAPP.value, index=True
    )
    template_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("meta_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    template_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    email_subject: Mapped[Optional[str]] = mapped_column(nullable=True)
    email_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    variable_mappings: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # Relationships
    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="steps", lazy="noload"
    )
    template: Mapped[Optional["MessageTemplate"]] = relationship(
        "MessageTemplate", lazy="noload"
    )
