"""Workflow model for the outreach sequencer."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Workflow(BaseModel):
    """An ordered, multi-step outbound sequence for one organization.

    Attributes:
        id: Unique identifier (UUID string)
        organization_id: Foreign key to Organization
        list_id: Contact list whose members get enrolled
        name: Workflow name
        is_active: Activation flag; deactivation pauses in-flight enrollments
        created_by: Free-form identifier of the creator
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "workflows"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    list_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("lists.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(default=False, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(nullable=True)

    # Relationships
    steps: Mapped[list["WorkflowStep"]] = relationship(
        "WorkflowStep",
        back_populates="workflow",
        order_by="WorkflowStep.step_order",
        lazy="noload",
    )
