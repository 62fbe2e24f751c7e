"""CRM contact and contact list models."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Contact(BaseModel):
    """A CRM contact that workflows send to.

    Attributes:
        organization_id: Owning organization
        name / company: Display fields, also usable as merge variables
        phone: WhatsApp address (E.164 without '+')
        email: Email address
        custom_properties: Free-form key/value bag for merge variables
    """

    __tablename__ = "crm_contacts"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    company: Mapped[Optional[str]] = mapped_column(nullable=True)
    custom_properties: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


class ContactList(BaseModel):
    """A dynamic contact list a workflow enrolls from.

    Membership = contacts matching every filter, plus manual_contact_ids,
    minus inactive_contact_ids.

    Attributes:
        filters: List of {"field", "comparison", "value"} dicts
        manual_contact_ids: Contacts always included
        inactive_contact_ids: Contacts always excluded
    """

    __tablename__ = "lists"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)
    filters: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    manual_contact_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    inactive_contact_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
