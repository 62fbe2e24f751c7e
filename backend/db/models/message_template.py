"""WhatsApp message template model."""

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import TemplateStatus
from db.base import BaseModel


class MessageTemplate(BaseModel):
    """A WhatsApp template synced from the provider.

    Only templates whose status is approved can be sent. The status is
    re-checked on every send because it can change after a workflow
    step referencing the template was created.

    Attributes:
        name: Provider template name
        body: Body text with {{variable}} placeholders
        language: Provider language code (e.g. en_US)
        status: Provider approval status
    """

    __tablename__ = "meta_templates"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False, index=True)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    language: Mapped[str] = mapped_column(nullable=False, default="en_US")
    status: Mapped[str] = mapped_column(
        nullable=False, default=TemplateStatus.PENDING.value, index=True
    )
