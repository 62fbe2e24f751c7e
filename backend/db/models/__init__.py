"""Database models for the outreach sequencer.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.organization import Organization
from db.models.contact import Contact, ContactList
from db.models.message_template import MessageTemplate
from db.models.workflow import Workflow
from db.models.workflow_step import WorkflowStep
from db.models.enrollment import WorkflowEnrollment
from db.models.integration_setting import IntegrationSetting
from db.models.conversation import Conversation, Message

__all__ = [
    "Organization",
    "Contact",
    "ContactList",
    "MessageTemplate",
    "Workflow",
    "WorkflowStep",
    "WorkflowEnrollment",
    "IntegrationSetting",
    "Conversation",
    "Message",
]
