"""Workflow service: CRUD, activation and enrollment management.

Creates the state the processing engine consumes: workflows with their
ordered steps, and the enrollments of list contacts into them.
Activation enrolls the list (and resumes paused enrollments);
deactivation pauses every in-flight enrollment instead of deleting it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import (
    DETAILS_ENROLLMENT_LIMIT,
    ENROLLMENT_INSERT_CHUNK,
    Channel,
    EnrollmentStatus,
    TemplateStatus,
)
from core.exceptions import NotFoundError, ValidationError
from core.utils import utc_now_naive
from db.models.contact import Contact, ContactList
from db.models.enrollment import WorkflowEnrollment
from db.models.message_template import MessageTemplate
from db.models.workflow import Workflow
from db.models.workflow_step import WorkflowStep
from services.base import BaseService
from services.list_service import resolve_list_contacts
from workflow.scheduling import compute_next_send_at

logger = logging.getLogger(__name__)


@dataclass
class EnrollmentReport:
    """Outcome of enrolling a list into a workflow."""
    enrolled: int = 0
    skipped: int = 0
    total_in_list: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "enrolled": self.enrolled,
            "skipped": self.skipped,
            "total_in_list": self.total_in_list,
            "errors": self.errors,
        }


@dataclass
class WorkflowUpdateResult:
    workflow: Workflow
    reactivated: int = 0
    paused: int = 0
    enrollment: Optional[EnrollmentReport] = None


@dataclass
class WorkflowSummary:
    """A workflow row with its list name, step count and enrollment stats."""
    workflow: Workflow
    list_name: Optional[str] = None
    step_count: int = 0
    stats: dict[str, int] = field(default_factory=dict)


@dataclass
class WorkflowDetails:
    workflow: Workflow
    contact_list: Optional[ContactList]
    steps: list[tuple[WorkflowStep, Optional[MessageTemplate]]]
    enrollments: list[tuple[WorkflowEnrollment, Optional[Contact]]]


class WorkflowService(BaseService[Workflow]):
    """Service for workflow management and enrollment."""

    def __init__(self, db: AsyncSession):
        super().__init__(Workflow, db)

    # ─── Create ────────────────────────────────────────────

    async def create_workflow(
        self,
        organization_id: str,
        name: str,
        list_id: str,
        steps: list[dict[str, Any]],
        is_active: bool = False,
        created_by: Optional[str] = None,
    ) -> tuple[Workflow, Optional[EnrollmentReport]]:
        """Create a workflow and its steps; optionally activate it.

        Raises:
            ValidationError: missing fields or invalid steps
            NotFoundError: unknown list or template
        """
        if not name or not list_id:
            raise ValidationError("Fields required: name, list_id, steps")
        if not steps:
            raise ValidationError("A workflow needs at least one step")

        contact_list = await self._get_list(list_id, organization_id)
        if contact_list is None:
            raise NotFoundError("List not found")

        normalized = await self._validate_steps(organization_id, steps)

        workflow = await self.create({
            "organization_id": organization_id,
            "name": name,
            "list_id": list_id,
            "is_active": False,
            "created_by": created_by,
        })
        for step in normalized:
            self.db.add(WorkflowStep(workflow_id=workflow.id, **step))
        await self.db.flush()
        logger.info(f"Workflow {workflow.id} created with {len(normalized)} steps")

        report = None
        if is_active:
            report = await self._activate_and_enroll(workflow, contact_list)
        return workflow, report

    async def _validate_steps(self, organization_id: str, steps: list[dict]) -> list[dict]:
        """Check channel content and dense 1..n ordering; return step rows."""
        rows = []
        for position, step in enumerate(steps, start=1):
            channel = step.get("channel") or Channel.WHATSAPP.value
            step_order = step.get("step_order") or position
            row = {
                "step_order": step_order,
                "channel": channel,
                "delay_days": step.get("delay_days") or 0,
                "send_time": step.get("send_time") or None,
                "variable_mappings": step.get("variable_mappings") or [],
                "template_id": None,
                "template_name": None,
                "email_subject": None,
                "email_body": None,
            }

            if channel == Channel.WHATSAPP.value:
                template = await self._get_template(step.get("template_id"), organization_id)
                if template is None:
                    raise NotFoundError(f"Template {step.get('template_id')} not found")
                if (template.status or "").lower() != TemplateStatus.APPROVED.value:
                    raise ValidationError(f'Template "{template.name}" is not approved')
                row["template_id"] = template.id
                row["template_name"] = step.get("template_name") or template.name
            elif channel == Channel.EMAIL.value:
                if not step.get("email_subject") or not step.get("email_body"):
                    raise ValidationError(
                        f"Email step {step_order}: email_subject and email_body are required"
                    )
                row["email_subject"] = step["email_subject"]
                row["email_body"] = step["email_body"]
            else:
                raise ValidationError(f"Unsupported channel: {channel}")

            if row["delay_days"] < 0:
                raise ValidationError(f"Step {step_order}: delay_days cannot be negative")
            rows.append(row)

        orders = sorted(r["step_order"] for r in rows)
        if orders != list(range(1, len(rows) + 1)):
            raise ValidationError("Step orders must be consecutive starting at 1")
        return rows

    # ─── Update ────────────────────────────────────────────

    async def update_workflow(
        self,
        workflow_id: str,
        organization_id: str,
        name: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> WorkflowUpdateResult:
        """Rename and/or toggle activation of a workflow.

        Activating resumes paused enrollments and enrolls new list
        contacts. Deactivating pauses every active enrollment.
        """
        workflow = await self.get_by_id_and_org(workflow_id, organization_id)
        if workflow is None:
            raise NotFoundError("Workflow not found")
        if name is None and is_active is None:
            raise ValidationError("No fields to update")

        was_active = workflow.is_active
        will_be_active = was_active if is_active is None else is_active

        if not was_active and will_be_active:
            if await self._count_steps(workflow_id) == 0:
                raise ValidationError("Cannot activate: the workflow has no steps")

        if name is not None:
            workflow.name = name
        workflow.is_active = will_be_active
        await self.db.flush()

        result = WorkflowUpdateResult(workflow=workflow)

        if not was_active and will_be_active:
            result.reactivated = await self._reactivate_paused(workflow_id)
            contact_list = await self._get_list(workflow.list_id, organization_id) if workflow.list_id else None
            result.enrollment = await self._activate_and_enroll(workflow, contact_list)
            logger.info(
                f"Workflow {workflow_id} activated: {result.reactivated} reactivated, "
                f"{result.enrollment.enrolled} enrolled"
            )
        elif was_active and not will_be_active:
            result.paused = await self.pause_enrollments(workflow_id)
            logger.info(f"Workflow {workflow_id} deactivated: {result.paused} enrollments paused")

        return result

    async def pause_enrollments(self, workflow_id: str) -> int:
        """Pause every active enrollment of a workflow."""
        result = await self.db.execute(
            update(WorkflowEnrollment)
            .where(
                WorkflowEnrollment.workflow_id == workflow_id,
                WorkflowEnrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            .values(status=EnrollmentStatus.PAUSED.value, last_error="Workflow deactivated")
        )
        return result.rowcount or 0

    async def _reactivate_paused(self, workflow_id: str) -> int:
        """Resume paused enrollments at their current step."""
        result = await self.db.execute(
            select(WorkflowEnrollment).where(
                WorkflowEnrollment.workflow_id == workflow_id,
                WorkflowEnrollment.status == EnrollmentStatus.PAUSED.value,
            ).execution_options(populate_existing=True)
        )
        paused = result.scalars().all()
        if not paused:
            return 0

        steps = await self._steps_by_order(workflow_id)
        reactivated = 0
        for enrollment in paused:
            step = steps.get(enrollment.current_step)
            if step is None:
                enrollment.status = EnrollmentStatus.FAILED.value
                enrollment.last_error = "Step no longer exists on reactivation"
                continue
            enrollment.status = EnrollmentStatus.ACTIVE.value
            enrollment.next_send_at = compute_next_send_at(0, step.send_time)
            enrollment.last_error = None
            reactivated += 1

        await self.db.flush()
        logger.info(f"Workflow {workflow_id}: {reactivated}/{len(paused)} paused enrollments reactivated")
        return reactivated

    # ─── Enrollment ────────────────────────────────────────

    async def _activate_and_enroll(
        self,
        workflow: Workflow,
        contact_list: Optional[ContactList],
    ) -> EnrollmentReport:
        """Mark the workflow active and enroll list contacts not yet enrolled."""
        workflow.is_active = True
        await self.db.flush()

        first_step = (await self._steps_by_order(workflow.id)).get(1)
        if first_step is None:
            return EnrollmentReport(errors=["First step not found"])
        if contact_list is None:
            return EnrollmentReport(errors=["List not found"])

        contact_ids = await resolve_list_contacts(self.db, contact_list, workflow.organization_id)
        if not contact_ids:
            return EnrollmentReport(errors=["The list has no contacts"])

        already = await self._enrolled_contact_ids(workflow.id)
        new_ids = [cid for cid in contact_ids if cid not in already]
        report = EnrollmentReport(
            skipped=len(contact_ids) - len(new_ids),
            total_in_list=len(contact_ids),
        )
        report.enrolled = await self._insert_enrollments(workflow, first_step, new_ids)
        return report

    async def enroll_contacts(
        self,
        workflow_id: str,
        organization_id: str,
        contact_ids: list[str],
    ) -> int:
        """Enroll specific contacts, ignoring those already enrolled.

        Returns:
            Number of new enrollments
        """
        if not contact_ids:
            raise ValidationError("contact_ids must not be empty")
        workflow = await self.get_by_id_and_org(workflow_id, organization_id)
        if workflow is None:
            raise NotFoundError("Workflow not found")
        first_step = (await self._steps_by_order(workflow_id)).get(1)
        if first_step is None:
            raise ValidationError("Workflow has no steps")

        result = await self.db.execute(
            select(Contact.id).where(
                Contact.organization_id == organization_id,
                Contact.id.in_(contact_ids),
            )
        )
        known = set(result.scalars().all())
        already = await self._enrolled_contact_ids(workflow_id)

        new_ids = []
        for cid in contact_ids:
            if cid in known and cid not in already and cid not in new_ids:
                new_ids.append(cid)
        return await self._insert_enrollments(workflow, first_step, new_ids)

    async def _insert_enrollments(
        self,
        workflow: Workflow,
        first_step: WorkflowStep,
        contact_ids: list[str],
    ) -> int:
        """Insert new active enrollments at step 1, in chunks."""
        if not contact_ids:
            return 0
        now = utc_now_naive()
        next_send_at = compute_next_send_at(first_step.delay_days, first_step.send_time, now)

        inserted = 0
        for start in range(0, len(contact_ids), ENROLLMENT_INSERT_CHUNK):
            chunk = contact_ids[start:start + ENROLLMENT_INSERT_CHUNK]
            self.db.add_all([
                WorkflowEnrollment(
                    workflow_id=workflow.id,
                    contact_id=contact_id,
                    organization_id=workflow.organization_id,
                    current_step=1,
                    status=EnrollmentStatus.ACTIVE.value,
                    enrolled_at=now,
                    next_send_at=next_send_at,
                    retry_count=0,
                )
                for contact_id in chunk
            ])
            await self.db.flush()
            inserted += len(chunk)

        logger.info(
            f"Workflow {workflow.id}: {inserted} contacts enrolled, "
            f"next_send_at={next_send_at.isoformat()}"
        )
        return inserted

    async def unenroll(self, enrollment_id: str, organization_id: str) -> None:
        """Remove a contact from a workflow."""
        result = await self.db.execute(
            delete(WorkflowEnrollment).where(
                WorkflowEnrollment.id == enrollment_id,
                WorkflowEnrollment.organization_id == organization_id,
            )
        )
        if not result.rowcount:
            raise NotFoundError("Enrollment not found")

    async def sync_list(self, list_id: str, organization_id: str) -> dict:
        """Enroll missing list contacts into every active workflow using the list."""
        result = await self.db.execute(
            select(Workflow).where(
                Workflow.list_id == list_id,
                Workflow.organization_id == organization_id,
                Workflow.is_active.is_(True),
            )
        )
        workflows = result.scalars().all()
        if not workflows:
            return {"synced_workflows": 0, "total_enrolled": 0, "results": []}

        contact_list = await self._get_list(list_id, organization_id)
        total = 0
        results = []
        for workflow in workflows:
            report = await self._activate_and_enroll(workflow, contact_list)
            total += report.enrolled
            results.append({
                "workflow_id": workflow.id,
                "name": workflow.name,
                "enrolled": report.enrolled,
                "skipped": report.skipped,
            })
        logger.info(f"List {list_id} synced: {total} new enrollments in {len(workflows)} workflows")
        return {"synced_workflows": len(workflows), "total_enrolled": total, "results": results}

    # ─── Delete ────────────────────────────────────────────

    async def delete_workflow(self, workflow_id: str, organization_id: str) -> None:
        """Delete a workflow together with its steps and enrollments."""
        workflow = await self.get_by_id_and_org(workflow_id, organization_id)
        if workflow is None:
            raise NotFoundError("Workflow not found")
        await self.db.execute(
            delete(WorkflowEnrollment).where(WorkflowEnrollment.workflow_id == workflow_id)
        )
        await self.db.execute(delete(WorkflowStep).where(WorkflowStep.workflow_id == workflow_id))
        await self.db.delete(workflow)
        await self.db.flush()
        logger.info(f"Workflow {workflow_id} deleted")

    # ─── Read ──────────────────────────────────────────────

    async def list_workflows(self, organization_id: str) -> list[WorkflowSummary]:
        """All workflows of an organization, newest first, with stats."""
        result = await self.db.execute(
            select(Workflow, ContactList.name)
            .outerjoin(ContactList, ContactList.id == Workflow.list_id)
            .where(Workflow.organization_id == organization_id)
            .order_by(Workflow.created_at.desc())
        )
        rows = result.all()
        if not rows:
            return []
        workflow_ids = [wf.id for wf, _ in rows]

        counts = await self.db.execute(
            select(WorkflowEnrollment.workflow_id, WorkflowEnrollment.status, func.count())
            .where(WorkflowEnrollment.workflow_id.in_(workflow_ids))
            .group_by(WorkflowEnrollment.workflow_id, WorkflowEnrollment.status)
        )
        stats: dict[str, dict[str, int]] = {}
        for wf_id, status, count in counts.all():
            stats.setdefault(wf_id, {})[status] = count

        step_counts = await self.db.execute(
            select(WorkflowStep.workflow_id, func.count())
            .where(WorkflowStep.workflow_id.in_(workflow_ids))
            .group_by(WorkflowStep.workflow_id)
        )
        steps = dict(step_counts.all())

        summaries = []
        for workflow, list_name in rows:
            by_status = stats.get(workflow.id, {})
            summaries.append(WorkflowSummary(
                workflow=workflow,
                list_name=list_name,
                step_count=steps.get(workflow.id, 0),
                stats={
                    "active_enrollments": by_status.get(EnrollmentStatus.ACTIVE.value, 0),
                    "completed_enrollments": by_status.get(EnrollmentStatus.COMPLETED.value, 0),
                    "failed_enrollments": by_status.get(EnrollmentStatus.FAILED.value, 0),
                },
            ))
        return summaries

    async def get_workflow_details(self, workflow_id: str, organization_id: str) -> WorkflowDetails:
        """Workflow with its steps and latest enrollments."""
        workflow = await self.get_by_id_and_org(workflow_id, organization_id)
        if workflow is None:
            raise NotFoundError("Workflow not found")

        contact_list = await self._get_list(workflow.list_id, organization_id) if workflow.list_id else None

        step_rows = await self.db.execute(
            select(WorkflowStep, MessageTemplate)
            .outerjoin(MessageTemplate, MessageTemplate.id == WorkflowStep.template_id)
            .where(WorkflowStep.workflow_id == workflow_id)
            .order_by(WorkflowStep.step_order.asc())
        )
        enrollment_rows = await self.db.execute(
            select(WorkflowEnrollment, Contact)
            .outerjoin(Contact, Contact.id == WorkflowEnrollment.contact_id)
            .where(WorkflowEnrollment.workflow_id == workflow_id)
            .order_by(WorkflowEnrollment.enrolled_at.desc())
            .limit(DETAILS_ENROLLMENT_LIMIT)
        )
        return WorkflowDetails(
            workflow=workflow,
            contact_list=contact_list,
            steps=[tuple(r) for r in step_rows.all()],
            enrollments=[tuple(r) for r in enrollment_rows.all()],
        )

    # ─── Helpers ───────────────────────────────────────────

    async def _get_list(self, list_id: str, organization_id: str) -> Optional[ContactList]:
        result = await self.db.execute(
            select(ContactList).where(
                ContactList.id == list_id,
                ContactList.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def _get_template(self, template_id: Optional[str], organization_id: str) -> Optional[MessageTemplate]:
        if not template_id:
            return None
        result = await self.db.execute(
            select(MessageTemplate).where(
                MessageTemplate.id == template_id,
                MessageTemplate.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def _count_steps(self, workflow_id: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(WorkflowStep).where(WorkflowStep.workflow_id == workflow_id)
        )
        return result.scalar() or 0

    async def _steps_by_order(self, workflow_id: str) -> dict[int, WorkflowStep]:
        result = await self.db.execute(
            select(WorkflowStep).where(WorkflowStep.workflow_id == workflow_id)
        )
        return {step.step_order: step for step in result.scalars().all()}

    async def _enrolled_contact_ids(self, workflow_id: str) -> set[str]:
        result = await self.db.execute(
            select(WorkflowEnrollment.contact_id).where(WorkflowEnrollment.workflow_id == workflow_id)
        )
        return set(result.scalars().all())
