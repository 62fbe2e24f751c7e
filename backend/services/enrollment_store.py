"""Enrollment store: the record-level interface used by the engine.

Reads return frozen snapshots rather than ORM instances, so the engine
never depends on session state and the transition functions stay pure.
Every enrollment write is a single guarded UPDATE that only matches the
row while it still holds the state read at selection time; a second
pass that picked the same row concurrently therefore cannot advance it
twice.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import EnrollmentStatus
from core.exceptions import StoreUnavailableError
from db.models.contact import Contact
from db.models.enrollment import WorkflowEnrollment
from db.models.integration_setting import IntegrationSetting
from db.models.message_template import MessageTemplate
from db.models.workflow import Workflow
from db.models.workflow_step import WorkflowStep
from messaging.channels import StepDefinition
from messaging.variables import ContactData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentSnapshot:
    """An enrollment as read at selection time, with its workflow's state."""
    id: str
    workflow_id: str
    contact_id: str
    organization_id: str
    current_step: int
    retry_count: int
    next_send_at: Optional[datetime]
    workflow_name: Optional[str] = None
    workflow_is_active: bool = False


class EnrollmentStore:
    """Async SQLAlchemy implementation of the enrollment store."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Read ──────────────────────────────────────────────

    async def fetch_due(self, now: datetime, limit: int) -> list[EnrollmentSnapshot]:
        """Active enrollments due at ``now``, oldest first, at most ``limit``.

        Raises:
            StoreUnavailableError: the due set could not be read.
        """
        query = (
            select(WorkflowEnrollment, Workflow.name, Workflow.is_active)
            .outerjoin(Workflow, Workflow.id == WorkflowEnrollment.workflow_id)
            .where(
                WorkflowEnrollment.status == EnrollmentStatus.ACTIVE.value,
                WorkflowEnrollment.next_send_at.is_not(None),
                WorkflowEnrollment.next_send_at <= now,
            )
            .order_by(WorkflowEnrollment.next_send_at.asc())
            .limit(limit)
        )
        try:
            result = await self.db.execute(query)
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch due enrollments: {e}")
            raise StoreUnavailableError(f"Failed to fetch due enrollments: {e}") from e

        return [
            EnrollmentSnapshot(
                id=enrollment.id,
                workflow_id=enrollment.workflow_id,
                contact_id=enrollment.contact_id,
                organization_id=enrollment.organization_id,
                current_step=enrollment.current_step,
                retry_count=enrollment.retry_count or 0,
                next_send_at=enrollment.next_send_at,
                workflow_name=name,
                workflow_is_active=bool(is_active),
            )
            for enrollment, name, is_active in rows
        ]

    async def get_step(self, workflow_id: str, step_order: int) -> Optional[StepDefinition]:
        """Step ``step_order`` of a workflow with its template, if any."""
        result = await self.db.execute(
            select(WorkflowStep, MessageTemplate)
            .outerjoin(MessageTemplate, MessageTemplate.id == WorkflowStep.template_id)
            .where(
                WorkflowStep.workflow_id == workflow_id,
                WorkflowStep.step_order == step_order,
            )
            .limit(1)
        )
        row = result.first()
        if row is None:
            return None
        step, template = row
        return StepDefinition.from_model(step, template)

    async def get_contact(self, contact_id: str) -> Optional[ContactData]:
        result = await self.db.execute(select(Contact).where(Contact.id == contact_id))
        contact = result.scalar_one_or_none()
        return ContactData.from_model(contact) if contact is not None else None

    async def get_credentials(self, organization_id: str, service_name: str) -> Optional[dict]:
        """Opaque credentials of one integration; None when not configured."""
        result = await self.db.execute(
            select(IntegrationSetting.credentials).where(
                IntegrationSetting.organization_id == organization_id,
                IntegrationSetting.service_name == service_name,
            )
        )
        return result.scalar_one_or_none()

    # ─── Write ─────────────────────────────────────────────

    async def save_credentials(self, organization_id: str, service_name: str, credentials: dict) -> bool:
        """Persist refreshed credentials. Returns False when the write failed."""
        try:
            await self.db.execute(
                update(IntegrationSetting)
                .where(
                    IntegrationSetting.organization_id == organization_id,
                    IntegrationSetting.service_name == service_name,
                )
                .values(credentials=credentials)
            )
            await self.db.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Failed to save {service_name} credentials for org {organization_id}: {e}")
            await self.db.rollback()
            return False

    async def apply(self, snapshot: EnrollmentSnapshot, values: dict) -> bool:
        """Write ``values`` to the enrollment if it is unchanged since selection.

        Returns:
            True when the row was updated, False when another pass
            already moved it.
        """
        try:
            result = await self.db.execute(
                update(WorkflowEnrollment)
                .where(
                    WorkflowEnrollment.id == snapshot.id,
                    WorkflowEnrollment.status == EnrollmentStatus.ACTIVE.value,
                    WorkflowEnrollment.current_step == snapshot.current_step,
                    WorkflowEnrollment.retry_count == snapshot.retry_count,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return result.rowcount == 1

    async def rollback(self) -> None:
        await self.db.rollback()
