"""IntegrationSetting model: per-organization channel credentials."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class IntegrationSetting(BaseModel):
    """Credentials of one integration for one organization.

    The credentials blob is opaque to everything except the channel
    sender that owns service_name:
        whatsapp: {"phone_id" | "phone_number_id", "access_token"}
        gmail:    {"access_token", "refresh_token", "gmail_address"}
    """

    __tablename__ = "integration_settings"
    __table_args__ = (
        UniqueConstraint("organization_id", "service_name", name="uq_integration_settings_service"),
    )

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_name: Mapped[str] = mapped_column(nullable=False, index=True)
    credentials: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
