"""Conversation and message history models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Conversation(BaseModel):
    """A per-contact, per-platform thread in the organization's inbox."""

    __tablename__ = "conversations"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    contact_address: Mapped[str] = mapped_column(nullable=False, index=True)
    contact_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    platform: Mapped[str] = mapped_column(nullable=False, index=True)
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_message_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    unread_count: Mapped[int] = mapped_column(default=0)


class Message(BaseModel):
    """A single message inside a conversation."""

    __tablename__ = "messages"

    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[str] = mapped_column(nullable=False)
    author_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_incoming: Mapped[bool] = mapped_column(default=False)
    status: Mapped[str] = mapped_column(nullable=False, default="sent")
    type: Mapped[str] = mapped_column(nullable=False, default="text")
    provider_message_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
