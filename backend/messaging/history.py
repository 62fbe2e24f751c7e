"""Conversation history for messages sent by workflows.

Successful workflow sends are mirrored into the organization's inbox so
agents can see what a contact already received. Recording is
best-effort: a database error here is logged and rolled back, it never
turns a delivered message into a failure.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.utils import utc_now_naive
from db.models.conversation import Conversation, Message
from messaging.variables import ContactData

logger = logging.getLogger(__name__)

WORKFLOW_SENDER_ID = "workflow_system"
WORKFLOW_AUTHOR_NAME = "Workflow System"


class DeliveryHistory:
    """Append sent messages to per-contact conversations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_or_create_conversation(
        self,
        organization_id: str,
        platform: str,
        address: str,
        contact: ContactData,
        preview: str,
    ) -> Conversation:
        result = await self.db.execute(
            select(Conversation).where(
                Conversation.organization_id == organization_id,
                Conversation.platform == platform,
                Conversation.contact_address == address,
            ).limit(1)
        )
        conversation = result.scalar_one_or_none()
        if conversation is not None:
            return conversation

        conversation = Conversation(
            organization_id=organization_id,
            contact_id=contact.id,
            contact_address=address,
            contact_name=contact.name or address,
            platform=platform,
            last_message=preview,
            last_message_time=utc_now_naive(),
            unread_count=0,
        )
        self.db.add(conversation)
        await self.db.flush()
        return conversation

    async def record(
        self,
        *,
        organization_id: str,
        contact: ContactData,
        platform: str,
        address: str,
        text: str,
        provider_message_id: Optional[str],
        message_type: str = "text",
        metadata: Optional[dict] = None,
    ) -> Optional[Message]:
        """Store one outgoing message and bump the conversation preview.

        Returns:
            The stored Message, or None when recording failed.
        """
        try:
            conversation = await self._get_or_create_conversation(
                organization_id, platform, address, contact, text,
            )
            message = Message(
                conversation_id=conversation.id,
                organization_id=organization_id,
                sender_id=WORKFLOW_SENDER_ID,
                author_name=WORKFLOW_AUTHOR_NAME,
                text=text,
                is_incoming=False,
                status="sent",
                type=message_type,
                provider_message_id=provider_message_id,
                meta=metadata or {},
            )
            self.db.add(message)
            conversation.last_message = text
            conversation.last_message_time = utc_now_naive()
            await self.db.commit()
            return message
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to record {platform} message {provider_message_id} "
                f"for contact {contact.id}: {e}"
            )
            await self.db.rollback()
            return None
